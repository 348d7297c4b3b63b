from tfdeploy.checks import CheckRunCache, deploy_check_run_title, locked_summary
from tfdeploy.logging import get_logger
from tfdeploy.models import UNLOCK_ACTION, CheckRunRequest, CheckRunState
from tfdeploy.revision.queue import DeployQueue, LockStatus

logger = get_logger(__name__)


class LockStateUpdater:
    """Refreshes the check runs of queued merges whenever the lock changes."""

    def __init__(self, check_runs: CheckRunCache):
        self.check_runs = check_runs

    async def update_queued_revisions(self, queue: DeployQueue) -> None:
        lock = queue.get_lock_state()
        revisions_summary = queue.queued_revisions_summary()

        for info in queue.ordered_merged_items():
            if lock.status == LockStatus.LOCKED:
                request = CheckRunRequest(
                    title=deploy_check_run_title(info.root.name),
                    sha=info.revision,
                    repo=info.repo,
                    state=CheckRunState.ACTION_REQUIRED,
                    summary=f"{locked_summary(info.repo.full_name, lock.revision)}\n{revisions_summary}",
                    actions=[UNLOCK_ACTION],
                )
            else:
                request = CheckRunRequest(
                    title=deploy_check_run_title(info.root.name),
                    sha=info.revision,
                    repo=info.repo,
                    state=CheckRunState.QUEUED,
                    summary=revisions_summary,
                )

            logger.debug("updating_lock_status", deployment_id=str(info.id))
            try:
                await self.check_runs.create_or_update(str(info.id), request)
            except Exception as e:
                logger.debug("lock_status_update_failed", revision=info.revision, error=str(e))
