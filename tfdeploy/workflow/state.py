"""Durable state of root workflows.

A workflow writes a snapshot after every transition and reads it back when it
starts, so a restarted worker resumes with the same queue, lock, check runs
and latest deployment.
"""

from typing import Any
import uuid

from pydantic import BaseModel, Field

from tfdeploy.logging import get_logger
from tfdeploy.models import LatestDeployment
from tfdeploy.revision.queue import CurrentDeployment, QueueSnapshot

logger = get_logger(__name__)

SNAPSHOT_VERSION = "1"
# Long enough to cover redelivery of any unacked signal.
DEPLOYMENT_ID_TTL_SECONDS = 7 * 24 * 60 * 60
WORKFLOW_KEY_PREFIX = "tfdeploy:workflow"


class WorkflowSnapshot(BaseModel):
    version: str = SNAPSHOT_VERSION
    queue: QueueSnapshot = Field(default_factory=QueueSnapshot)
    current: CurrentDeployment | None = None
    check_runs: dict[str, int] = Field(default_factory=dict)
    latest: LatestDeployment | None = None
    latest_loaded: bool = False


def _decode(raw: Any) -> str:
    return raw.decode() if isinstance(raw, bytes) else raw


class WorkflowStateStore:
    def __init__(self, redis: Any, key_prefix: str = WORKFLOW_KEY_PREFIX):
        self.redis = redis
        self.key_prefix = key_prefix

    def _key(self, root_key: str) -> str:
        return f"{self.key_prefix}:{root_key}"

    async def load(self, root_key: str) -> WorkflowSnapshot | None:
        raw = await self.redis.get(self._key(root_key))
        if raw is None:
            return None
        return WorkflowSnapshot.model_validate_json(_decode(raw))

    async def save(self, root_key: str, snapshot: WorkflowSnapshot) -> None:
        await self.redis.set(self._key(root_key), snapshot.model_dump_json())

    async def delete(self, root_key: str) -> None:
        await self.redis.delete(self._key(root_key))
        logger.debug("workflow_state_deleted", root_key=root_key)

    async def root_keys(self) -> list[str]:
        """Roots with saved state. Stopped workflows only leave state behind when work is pending."""
        prefix = f"{self.key_prefix}:"
        return [_decode(key)[len(prefix) :] async for key in self.redis.scan_iter(match=f"{prefix}*")]


class RedisIdGenerator:
    """Deployment ids keyed by the signal that created them.

    The first writer wins, so a signal redelivered after a crash maps to the
    deployment id generated the first time.
    """

    def __init__(self, redis: Any, key_prefix: str = "tfdeploy:deployment-id"):
        self.redis = redis
        self.key_prefix = key_prefix

    async def generate(self, request_id: str) -> uuid.UUID:
        key = f"{self.key_prefix}:{request_id}"
        await self.redis.set(key, str(uuid.uuid4()), nx=True, ex=DEPLOYMENT_ID_TTL_SECONDS)
        return uuid.UUID(_decode(await self.redis.get(key)))
