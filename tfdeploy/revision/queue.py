"""Per-root deployment queue with lock state.

Manual deploys go to a high-priority lane and can always be popped. Merged
revisions go to a low-priority lane that only drains while the queue is
unlocked.
"""

from collections import deque
from collections.abc import Awaitable, Callable
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from tfdeploy.checks import run_url_markdown
from tfdeploy.errors import QueueEmptyError
from tfdeploy.logging import get_logger
from tfdeploy.models import DeploymentInfo, TriggerType

logger = get_logger(__name__)

EMPTY_QUEUE_SUMMARY = "No other revisions ahead in queue."


class LockStatus(str, Enum):
    UNLOCKED = "unlocked"
    LOCKED = "locked"


class LockState(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: LockStatus = LockStatus.UNLOCKED
    revision: str = ""


class CurrentDeploymentStatus(str, Enum):
    QUEUED = "queued"
    IN_PROGRESS = "in_progress"


class CurrentDeployment(BaseModel):
    model_config = ConfigDict(frozen=True)

    deployment: DeploymentInfo
    status: CurrentDeploymentStatus = CurrentDeploymentStatus.QUEUED


class QueueSnapshot(BaseModel):
    high: list[DeploymentInfo] = Field(default_factory=list)
    low: list[DeploymentInfo] = Field(default_factory=list)
    lock: LockState = Field(default_factory=LockState)


LockStatusCallback = Callable[["DeployQueue"], Awaitable[None]]


class DeployQueue:
    def __init__(self, lock_status_callback: LockStatusCallback | None = None):
        self._high: deque[DeploymentInfo] = deque()
        self._low: deque[DeploymentInfo] = deque()
        self._lock = LockState()
        self.lock_status_callback = lock_status_callback

    def get_lock_state(self) -> LockState:
        return self._lock

    async def set_lock_for_merged_items(self, state: LockState) -> None:
        self._lock = state
        logger.info("queue_lock_changed", status=state.status.value, lock_revision=state.revision)
        if self.lock_status_callback is not None:
            await self.lock_status_callback(self)

    def contains(self, info: DeploymentInfo) -> bool:
        return any(d.same_target(info) for d in self.scan())

    def push(self, info: DeploymentInfo) -> bool:
        """Append ``info`` to its lane. Returns False if it is already pending.

        The queue does not know the deployment in progress; ``Receiver`` drops
        revisions matching it before they are pushed.
        """
        if self.contains(info):
            logger.warning("duplicate_revision_not_queued", revision=info.revision)
            return False

        if info.trigger_type == TriggerType.MANUAL:
            self._high.append(info)
        else:
            self._low.append(info)
        logger.debug("revision_queued", revision=info.revision, depth=len(self))
        return True

    def requeue_front(self, info: DeploymentInfo) -> None:
        """Put an interrupted deployment back at the head of its lane."""
        lane = self._high if info.trigger_type == TriggerType.MANUAL else self._low
        lane.appendleft(info)

    def can_pop(self) -> bool:
        return bool(self._high) or (self._lock.status == LockStatus.UNLOCKED and not self.is_empty())

    def pop(self) -> DeploymentInfo:
        lane = self._high if self._high else self._low
        if not lane:
            raise QueueEmptyError("no items to pop")
        return lane.popleft()

    def scan(self) -> list[DeploymentInfo]:
        return [*self._high, *self._low]

    def ordered_merged_items(self) -> list[DeploymentInfo]:
        return list(self._low)

    def is_empty(self) -> bool:
        return not self._high and not self._low

    def __len__(self) -> int:
        return len(self._high) + len(self._low)

    def queued_revisions_summary(self) -> str:
        if self.is_empty():
            return EMPTY_QUEUE_SUMMARY
        links = [run_url_markdown(d.repo.full_name, d.revision, d.check_run_id) for d in self.scan()]
        return f"Revisions in queue: {', '.join(links)}"

    def to_snapshot(self) -> QueueSnapshot:
        return QueueSnapshot(high=list(self._high), low=list(self._low), lock=self._lock)

    @classmethod
    def from_snapshot(
        cls, snapshot: QueueSnapshot, lock_status_callback: LockStatusCallback | None = None
    ) -> "DeployQueue":
        queue = cls(lock_status_callback)
        queue._high.extend(snapshot.high)
        queue._low.extend(snapshot.low)
        queue._lock = snapshot.lock
        return queue
