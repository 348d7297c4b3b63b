"""Audit trail of deploy jobs.

``AuditWorkflowRunnerWrapper`` brackets a terraform run with RUNNING and
SUCCESS/FAILURE events. Audit delivery never changes the outcome of a deploy.
"""

from typing import Protocol

from tfdeploy.contracts.audit import AuditJobEvent, AuditJobState
from tfdeploy.contracts.base import utcnow
from tfdeploy.logging import get_logger
from tfdeploy.models import DeploymentInfo, TriggerType
from tfdeploy.redis import RedisStreamClient

logger = get_logger(__name__)


class AuditPublisher:
    """Writes audit events to a Redis Stream."""

    def __init__(self, redis: RedisStreamClient, stream: str):
        self.redis = redis
        self.stream = stream

    async def publish(self, event: AuditJobEvent) -> None:
        await self.redis.publish_message(self.stream, event)
        logger.debug("audit_event_published", deployment_id=event.id, state=event.state.value)


class DeploymentRunner(Protocol):
    async def run(self, info: DeploymentInfo) -> None: ...


class AuditActivities(Protocol):
    async def audit_job(self, event: AuditJobEvent) -> None: ...


def build_event(info: DeploymentInfo, state: AuditJobState) -> AuditJobEvent:
    event = AuditJobEvent(
        id=str(info.id),
        state=state,
        revision=info.revision,
        repository=info.repo.full_name,
        pull_number=info.pull.number if info.pull else 0,
        root_name=info.root.name,
        initiating_user=info.user.username,
        force_apply=info.root.trigger_info.type == TriggerType.MANUAL,
    )
    if state in (AuditJobState.SUCCESS, AuditJobState.FAILURE):
        event = event.model_copy(update={"end_time": utcnow()})
    return event


class AuditWorkflowRunnerWrapper:
    def __init__(self, activities: AuditActivities, runner: DeploymentRunner):
        self.activities = activities
        self.runner = runner

    async def run(self, info: DeploymentInfo) -> None:
        await self._emit(info, AuditJobState.RUNNING)

        try:
            await self.runner.run(info)
        except Exception:
            await self._emit(info, AuditJobState.FAILURE)
            raise

        await self._emit(info, AuditJobState.SUCCESS)

    async def _emit(self, info: DeploymentInfo, state: AuditJobState) -> None:
        try:
            await self.activities.audit_job(build_event(info, state))
        except Exception as e:
            logger.error("audit_emit_failed", state=state.value, deployment_id=str(info.id), error=str(e))
