"""Holds merges that diverge from what is deployed until someone unlocks the root.

A root diverges when a manual deploy applied a revision that is not on the
default branch. Deploying the next merge would silently revert it, so merges
wait for an explicit unlock. Manual deploys never wait.
"""

from collections.abc import Awaitable, Callable
from typing import Protocol

from tfdeploy.activities import RetryPolicy
from tfdeploy.checks import deploy_check_run_title
from tfdeploy.contracts.signals import UnlockRequest
from tfdeploy.errors import WrappedError
from tfdeploy.logging import get_logger
from tfdeploy.models import (
    UNLOCK_ACTION,
    CheckRunRequest,
    CheckRunState,
    DeploymentInfo,
    DiffDirection,
    LatestDeployment,
    Repo,
    TriggerType,
)
from tfdeploy.revision.queue import LockState, LockStatus

logger = get_logger(__name__)

DIVERGED_COMMITS_SUMMARY = (
    "The current deployment has diverged from the default branch, so we have locked the root. "
    "This is most likely the result of this PR performing a manual deployment. To override that "
    "lock and allow the main branch to perform new deployments, select the Unlock button."
)


class LockerActivities(Protocol):
    async def fetch_latest_deployment(self, repo_full_name: str, root_name: str) -> LatestDeployment | None: ...

    async def compare_commit(self, repo: Repo, latest_revision: str, requested_revision: str) -> DiffDirection: ...

    async def update_check_run(
        self, check_run_id: int, request: CheckRunRequest, policy: RetryPolicy | None = None
    ): ...


class CheckRunLockNotifier:
    """Shows the divergence lock on the waiting deployment's check run."""

    def __init__(self, activities: LockerActivities, policy: RetryPolicy | None = None):
        self.activities = activities
        self.policy = policy

    async def notify(self, info: DeploymentInfo, state: LockState) -> None:
        if state.status != LockStatus.LOCKED:
            return
        request = CheckRunRequest(
            title=deploy_check_run_title(info.root.name),
            sha=info.revision,
            repo=info.repo,
            state=CheckRunState.PENDING,
            summary=DIVERGED_COMMITS_SUMMARY,
            actions=[UNLOCK_ACTION],
        )
        try:
            await self.activities.update_check_run(info.check_run_id, request, self.policy)
        except Exception as e:
            raise WrappedError("updating check run", e) from e


class RootLocker:
    def __init__(
        self,
        activities: LockerActivities,
        notifier: CheckRunLockNotifier,
        wait_for_unlock: Callable[[], Awaitable[UnlockRequest]],
    ):
        self.activities = activities
        self.notifier = notifier
        self.wait_for_unlock = wait_for_unlock

    async def lock(self, info: DeploymentInfo) -> bool:
        """Block a diverged merge until unlocked.

        Returns True when the deployment was held and then released. There is
        no timeout; a human has to act.
        """
        if info.trigger_type == TriggerType.MANUAL:
            return False

        latest = await self.activities.fetch_latest_deployment(info.repo.full_name, info.root.name)
        if latest is None or latest.revision == info.revision:
            return False

        direction = await self.activities.compare_commit(info.repo, latest.revision, info.revision)
        if direction != DiffDirection.DIVERGED:
            return False

        logger.warning("root_locked_on_divergence", deployed_revision=latest.revision)
        await self.notifier.notify(info, LockState(status=LockStatus.LOCKED, revision=latest.revision))

        unlock = await self.wait_for_unlock()
        logger.info("root_unlocked", unlocked_by=unlock.user.username)
        return True
