import asyncio
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Protocol

from tfdeploy.activities import Activities, RetryPolicy
from tfdeploy.checks import deploy_check_run_title
from tfdeploy.deploy.root_locker import RootLocker
from tfdeploy.errors import ForbiddenError
from tfdeploy.logging import deployment_context, get_logger
from tfdeploy.models import CheckRunRequest, CheckRunState, DeploymentInfo, LatestDeployment, TriggerType
from tfdeploy.requirements import Aggregate, Criteria
from tfdeploy.revision.queue import CurrentDeployment, CurrentDeploymentStatus, DeployQueue
from tfdeploy.revision.validator import Validator

logger = get_logger(__name__)


class WorkerState(str, Enum):
    WAITING = "waiting"
    WORKING = "working"
    COMPLETE = "complete"


class DeploymentRunner(Protocol):
    async def run(self, info: DeploymentInfo) -> None: ...


def criteria_for(info: DeploymentInfo) -> Criteria:
    return Criteria(
        user=info.user,
        branch=info.commit.branch,
        repo=info.repo,
        optional_pull=info.pull,
        installation_token=info.repo.installation_token,
        trigger_info=info.root.trigger_info,
    )


def forbidden_summary(error: ForbiddenError) -> str:
    return f"{error.template}\n\n```\n{error.details}\n```"


class Worker:
    """Drains a root's queue one deployment at a time.

    Each deployment goes through the root locker, the revision validator and
    the requirements before it runs. Merges must be ahead of the deployed
    revision; manual deploys only must not be behind it. The latest deployment is persisted after
    every attempted run, failed or not, so older revisions are never
    redeployed over it.
    """

    def __init__(
        self,
        queue: DeployQueue,
        activities: Activities,
        validator: Validator,
        aggregate: Aggregate,
        root_locker: RootLocker,
        runner: DeploymentRunner,
        queue_changed: asyncio.Event,
        on_transition: Callable[[], Awaitable[None]],
        check_run_policy: RetryPolicy | None = None,
        latest: LatestDeployment | None = None,
        latest_loaded: bool = False,
    ):
        self.queue = queue
        self.activities = activities
        self.validator = validator
        self.aggregate = aggregate
        self.root_locker = root_locker
        self.runner = runner
        self.queue_changed = queue_changed
        self.on_transition = on_transition
        self.check_run_policy = check_run_policy

        # mutable
        self.state = WorkerState.WAITING
        self.current: CurrentDeployment | None = None
        self.latest = latest
        self.latest_loaded = latest_loaded

    def get_current_deployment(self) -> CurrentDeployment | None:
        return self.current

    async def work(self) -> None:
        try:
            while True:
                if self.queue.is_empty():
                    self.state = WorkerState.WAITING

                while not self.queue.can_pop():
                    self.queue_changed.clear()
                    await self.queue_changed.wait()

                self.state = WorkerState.WORKING
                if not await self._load_latest():
                    return

                info = self.queue.pop()
                self.current = CurrentDeployment(deployment=info, status=CurrentDeploymentStatus.IN_PROGRESS)
                await self.on_transition()

                # An interrupted deployment stays current so a restart picks it up again.
                with deployment_context(str(info.id), info.revision):
                    await self.process(info)

                self.current = None
                await self.on_transition()
        except asyncio.CancelledError:
            logger.info("worker_cancelled")
            raise
        finally:
            self.state = WorkerState.COMPLETE

    async def _load_latest(self) -> bool:
        # Only needed once per workflow start; afterwards the worker tracks it.
        if self.latest_loaded:
            return True
        peek = self.queue.scan()[0]
        try:
            self.latest = await self.activities.fetch_latest_deployment(peek.repo.full_name, peek.root.name)
        except Exception as e:
            logger.error("fetch_latest_deployment_failed", error=str(e))
            return False
        self.latest_loaded = True
        return True

    async def process(self, info: DeploymentInfo) -> None:
        try:
            released = await self.root_locker.lock(info)
        except Exception as e:
            logger.error("root_lock_failed", error=str(e))
            return

        try:
            valid = await self._validate(info, released)
        except Exception as e:
            logger.error("revision_validation_failed", error=str(e))
            return
        if not valid:
            logger.info("deploy_skipped", reason="revision_not_deployable")
            return

        try:
            await self.aggregate.check(criteria_for(info))
        except ForbiddenError as e:
            logger.warning("deploy_forbidden", details=e.details)
            await self._update_check_run(info, CheckRunState.FAILURE, forbidden_summary(e))
            return
        except Exception as e:
            logger.error("requirement_check_failed", error=str(e))
            await self._update_check_run(info, CheckRunState.FAILURE, f"Unable to check deploy requirements: {e}")
            return

        try:
            await self.runner.run(info)
        except Exception as e:
            logger.error("deploy_failed", error=str(e))

        await self._persist_latest(info)

    async def _validate(self, info: DeploymentInfo, released: bool) -> bool:
        if info.trigger_type == TriggerType.MANUAL:
            return await self.validator.is_not_behind(info.repo, info, self.latest)
        # An unlock already accepted the divergence.
        if released:
            return True
        return await self.validator.is_valid(info.repo, info, self.latest)

    async def _persist_latest(self, info: DeploymentInfo) -> None:
        latest = info.to_latest()
        try:
            await self.activities.store_latest_deployment(latest)
        except Exception as e:
            logger.error("persist_latest_deployment_failed", error=str(e))
        self.latest = latest

    async def _update_check_run(self, info: DeploymentInfo, state: CheckRunState, summary: str) -> None:
        request = CheckRunRequest(
            title=deploy_check_run_title(info.root.name),
            sha=info.revision,
            repo=info.repo,
            state=state,
            summary=summary,
        )
        try:
            await self.activities.update_check_run(info.check_run_id, request, self.check_run_policy)
        except Exception as e:
            logger.error("check_run_update_failed", error=str(e))
