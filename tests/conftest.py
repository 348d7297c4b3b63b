"""Shared fixtures and in-memory fakes for tfdeploy tests."""

from typing import Any
import uuid

from fakeredis import FakeAsyncRedis
import pytest

from tfdeploy.activities import RetryPolicy
from tfdeploy.contracts.audit import AuditJobEvent
from tfdeploy.models import (
    CheckRunRequest,
    CheckRunResponse,
    Commit,
    DeploymentInfo,
    DiffDirection,
    Job,
    LatestDeployment,
    Repo,
    Root,
    Step,
    TriggerInfo,
    TriggerType,
    User,
)


class FakeActivities:
    """In-memory stand-in for ``Activities``.

    Put an exception in ``failures[<activity name>]`` to make that activity raise it.
    """

    def __init__(self):
        self.created: list[CheckRunRequest] = []
        self.updated: list[tuple[int, CheckRunRequest]] = []
        self.check_run_status: str = "queued"
        self._next_check_run_id = 100

        self.direction: DiffDirection = DiffDirection.AHEAD
        self.compared: list[tuple[str, str]] = []

        self.team_members: dict[str, list[str]] = {}
        self.latest: dict[tuple[str, str], LatestDeployment] = {}
        self.stored: list[LatestDeployment] = []
        self.audit_events: list[AuditJobEvent] = []
        self.commands: list[tuple[str, str, dict[str, str]]] = []
        self.command_outputs: dict[str, Any] = {}

        self.failures: dict[str, BaseException] = {}

    def _check_failure(self, name: str) -> None:
        if name in self.failures:
            raise self.failures[name]

    async def create_check_run(self, request: CheckRunRequest, policy: RetryPolicy | None = None):
        self._check_failure("create_check_run")
        self.created.append(request)
        self._next_check_run_id += 1
        return CheckRunResponse(id=self._next_check_run_id, status=self._status_for(request))

    async def update_check_run(self, check_run_id: int, request: CheckRunRequest, policy: RetryPolicy | None = None):
        self._check_failure("update_check_run")
        self.updated.append((check_run_id, request))
        return CheckRunResponse(id=check_run_id, status=self._status_for(request))

    def _status_for(self, request: CheckRunRequest) -> str:
        status, _ = request.state.status_and_conclusion()
        return status

    async def compare_commit(self, repo: Repo, latest_revision: str, requested_revision: str) -> DiffDirection:
        self._check_failure("compare_commit")
        self.compared.append((latest_revision, requested_revision))
        return self.direction

    async def list_team_members(self, installation_id: int, org: str, team_slug: str) -> list[str]:
        self._check_failure("list_team_members")
        return self.team_members.get(team_slug, [])

    async def fetch_latest_deployment(self, repo_full_name: str, root_name: str) -> LatestDeployment | None:
        self._check_failure("fetch_latest_deployment")
        return self.latest.get((repo_full_name, root_name))

    async def store_latest_deployment(self, deployment: LatestDeployment) -> None:
        self._check_failure("store_latest_deployment")
        self.stored.append(deployment)
        self.latest[(deployment.repo_full_name, deployment.root_name)] = deployment

    async def audit_job(self, event: AuditJobEvent) -> None:
        self.audit_events.append(event)
        self._check_failure("audit_job")

    async def execute_command(self, command: str, cwd: str, env: dict[str, str]) -> str:
        self.commands.append((command, cwd, env))
        output = self.command_outputs.get(command, "")
        if isinstance(output, BaseException):
            raise output
        return output


def make_repo(**overrides) -> Repo:
    values = {
        "owner": "lyft",
        "name": "infra",
        "url": "https://github.com/lyft/infra.git",
        "default_branch": "main",
        "installation_token": 42,
    }
    values.update(overrides)
    return Repo(**values)


def make_root(
    name: str = "mystack",
    trigger: TriggerType = TriggerType.MERGE,
    force: bool = False,
    plan: list[Step] | None = None,
    apply: list[Step] | None = None,
) -> Root:
    return Root(
        name=name,
        path="stacks/mystack",
        tf_version="1.4.0",
        plan=Job(steps=plan or []),
        apply=Job(steps=apply or []),
        trigger_info=TriggerInfo(type=trigger, force=force),
    )


def make_info(
    revision: str = "abc123",
    trigger: TriggerType = TriggerType.MERGE,
    root: Root | None = None,
    check_run_id: int = 0,
    **overrides,
) -> DeploymentInfo:
    values = {
        "id": uuid.uuid4(),
        "commit": Commit(revision=revision, branch="main"),
        "repo": make_repo(),
        "root": root or make_root(trigger=trigger),
        "check_run_id": check_run_id,
        "user": User(username="nish"),
    }
    values.update(overrides)
    return DeploymentInfo(**values)


@pytest.fixture
def activities():
    return FakeActivities()


@pytest.fixture
def fake_redis():
    return FakeAsyncRedis(decode_responses=True)
