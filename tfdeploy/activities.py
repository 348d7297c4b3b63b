"""Remote calls made by root workflows, each behind a retry and timeout policy.

Workflow code never talks to GitHub, Redis or a subprocess directly; it goes
through ``Activities`` so every side effect shares one retry policy and one
error type (``ActivityError``) once retries are exhausted.
"""

import asyncio
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, TypeVar

from pydantic import BaseModel, Field

from tfdeploy.config import Settings
from tfdeploy.errors import ActivityError, StepError
from tfdeploy.logging import get_logger
from tfdeploy.models import CheckRunRequest, CheckRunResponse, DiffDirection, LatestDeployment, Repo

if TYPE_CHECKING:
    from tfdeploy.clients.github import GitHubAppClient
    from tfdeploy.contracts.audit import AuditJobEvent
    from tfdeploy.deploy.audit import AuditPublisher
    from tfdeploy.deploy.store import DeploymentStore
    from tfdeploy.jobs.executor import CommandExecutor

logger = get_logger(__name__)

T = TypeVar("T")


class RetryPolicy(BaseModel):
    max_attempts: int = Field(default=5, ge=1)
    timeout_seconds: float | None = Field(default=30.0, gt=0)
    backoff_seconds: float = Field(default=1.0, ge=0)
    backoff_multiplier: float = Field(default=2.0, ge=1)
    max_backoff_seconds: float = Field(default=30.0, ge=0)

    @classmethod
    def from_settings(cls, settings: Settings) -> "RetryPolicy":
        return cls(
            max_attempts=settings.activity_max_attempts,
            timeout_seconds=settings.activity_timeout_seconds,
            backoff_seconds=settings.activity_backoff_seconds,
        )

    def with_attempts(self, max_attempts: int) -> "RetryPolicy":
        return self.model_copy(update={"max_attempts": max_attempts})

    def delay(self, attempt: int) -> float:
        return min(self.backoff_seconds * self.backoff_multiplier ** (attempt - 1), self.max_backoff_seconds)


async def execute_activity(
    name: str,
    fn: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    non_retryable: tuple[type[BaseException], ...] = (),
) -> T:
    """Run ``fn`` until it succeeds or the policy gives up.

    Each attempt is bounded by ``policy.timeout_seconds``. Exceptions listed in
    ``non_retryable`` propagate immediately.
    """
    for attempt in range(1, policy.max_attempts + 1):
        try:
            if policy.timeout_seconds is None:
                return await fn()
            return await asyncio.wait_for(fn(), timeout=policy.timeout_seconds)
        except non_retryable:
            raise
        except Exception as e:
            if attempt == policy.max_attempts:
                logger.error("activity_failed", activity=name, attempts=attempt, error=str(e))
                raise ActivityError(name, attempt, e) from e

            delay = policy.delay(attempt)
            logger.warning(
                "activity_attempt_failed",
                activity=name,
                attempt=attempt,
                retry_in_seconds=delay,
                error=str(e),
            )
            await asyncio.sleep(delay)

    raise AssertionError("unreachable")


class Activities:
    """The remote operations available to a root workflow."""

    def __init__(
        self,
        github: "GitHubAppClient",
        store: "DeploymentStore",
        audit: "AuditPublisher",
        executor: "CommandExecutor",
        policy: RetryPolicy | None = None,
    ):
        self.github = github
        self.store = store
        self.audit = audit
        self.executor = executor
        self.policy = policy or RetryPolicy()

    async def create_check_run(
        self, request: CheckRunRequest, policy: RetryPolicy | None = None
    ) -> CheckRunResponse:
        return await execute_activity(
            "create_check_run", lambda: self.github.create_check_run(request), policy or self.policy
        )

    async def update_check_run(
        self, check_run_id: int, request: CheckRunRequest, policy: RetryPolicy | None = None
    ) -> CheckRunResponse:
        return await execute_activity(
            "update_check_run",
            lambda: self.github.update_check_run(check_run_id, request),
            policy or self.policy,
        )

    async def compare_commit(self, repo: Repo, latest_revision: str, requested_revision: str) -> DiffDirection:
        """Direction of the requested revision relative to the latest deployed one."""
        return await execute_activity(
            "compare_commit",
            lambda: self.github.compare_commits(repo, latest_revision, requested_revision),
            self.policy,
        )

    async def list_team_members(self, installation_id: int, org: str, team_slug: str) -> list[str]:
        return await execute_activity(
            "list_team_members",
            lambda: self.github.list_team_members(installation_id, org, team_slug),
            self.policy,
        )

    async def fetch_latest_deployment(self, repo_full_name: str, root_name: str) -> LatestDeployment | None:
        return await execute_activity(
            "fetch_latest_deployment",
            lambda: self.store.fetch_latest(repo_full_name, root_name),
            self.policy,
        )

    async def store_latest_deployment(self, deployment: LatestDeployment) -> None:
        await execute_activity("store_latest_deployment", lambda: self.store.store_latest(deployment), self.policy)

    async def audit_job(self, event: "AuditJobEvent") -> None:
        await execute_activity("audit_job", lambda: self.audit.publish(event), self.policy)

    async def execute_command(self, command: str, cwd: str, env: dict[str, str]) -> str:
        # Commands own their timeout and are not safe to repeat.
        return await execute_activity(
            "execute_command",
            lambda: self.executor.run(command, cwd, env),
            RetryPolicy(max_attempts=1, timeout_seconds=None),
            non_retryable=(StepError,),
        )
