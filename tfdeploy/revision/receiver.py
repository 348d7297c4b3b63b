"""Intake of new-revision signals for a root."""

from collections.abc import Callable
from typing import Protocol
import uuid

from tfdeploy.activities import RetryPolicy
from tfdeploy.checks import QUEUED_SUMMARY, CheckRunCache, deploy_check_run_title, locked_summary
from tfdeploy.contracts.signals import NewRevisionRequest
from tfdeploy.logging import get_logger
from tfdeploy.models import UNLOCK_ACTION, CheckRunRequest, CheckRunState, DeploymentInfo, TriggerType
from tfdeploy.revision.queue import CurrentDeployment, CurrentDeploymentStatus, DeployQueue, LockState, LockStatus

logger = get_logger(__name__)


class IdGenerator(Protocol):
    async def generate(self, request_id: str) -> uuid.UUID:
        """Return the deployment id for a signal, the same one on every replay."""


class Receiver:
    def __init__(
        self,
        queue: DeployQueue,
        check_runs: CheckRunCache,
        id_generator: IdGenerator,
        current_deployment: Callable[[], CurrentDeployment | None],
        check_run_policy: RetryPolicy | None = None,
    ):
        self.queue = queue
        self.check_runs = check_runs
        self.id_generator = id_generator
        self.current_deployment = current_deployment
        self.check_run_policy = check_run_policy

    async def receive(self, request: NewRevisionRequest) -> DeploymentInfo | None:
        """Queue the revision. Returns the queued deployment, or None for duplicates."""
        root = request.root
        logger.info("revision_received", revision=request.revision, trigger=root.trigger_info.type.value)

        try:
            deployment_id = await self.id_generator.generate(request.request_id)
        except Exception as e:
            logger.error("deployment_id_generation_failed", error=str(e))
            deployment_id = uuid.uuid4()

        info = DeploymentInfo(
            id=deployment_id,
            commit=request.commit,
            repo=request.repo,
            root=root,
            user=request.user,
            pull=request.pull,
            tags=request.tags,
        )
        if self.queue.contains(info) or self._is_in_progress(info):
            logger.warning("duplicate_deploy_ignored", revision=request.revision, root=root.name)
            return None

        info = info.with_check_run(await self._create_check_run(info))

        if root.trigger_info.type == TriggerType.MANUAL:
            await self.queue.set_lock_for_merged_items(LockState(status=LockStatus.LOCKED, revision=request.revision))

        self.queue.push(info)
        return info

    async def _create_check_run(self, info: DeploymentInfo) -> int:
        lock = self.queue.get_lock_state()
        request = CheckRunRequest(
            title=deploy_check_run_title(info.root.name),
            sha=info.revision,
            repo=info.repo,
            state=CheckRunState.QUEUED,
            summary=f"{QUEUED_SUMMARY}\n{self.queue.queued_revisions_summary()}",
        )

        if (
            lock.status == LockStatus.LOCKED
            and lock.revision != info.revision
            and info.trigger_type == TriggerType.MERGE
        ):
            request = request.model_copy(
                update={
                    "state": CheckRunState.ACTION_REQUIRED,
                    "summary": f"{locked_summary(info.repo.full_name, lock.revision)}\n"
                    f"{self.queue.queued_revisions_summary()}",
                    "actions": [UNLOCK_ACTION],
                }
            )

        # Check runs are best effort; the deploy proceeds without one.
        try:
            return await self.check_runs.create_or_update(str(info.id), request, self.check_run_policy)
        except Exception as e:
            logger.error("check_run_create_failed", revision=info.revision, error=str(e))
            return 0

    def _is_in_progress(self, info: DeploymentInfo) -> bool:
        current = self.current_deployment()
        return (
            current is not None
            and current.status == CurrentDeploymentStatus.IN_PROGRESS
            and current.deployment.same_target(info)
        )
