"""The per-root workflow.

One ``RootWorkflow`` exists per (repo, root). Its mailbox is drained by a
single task in arrival order while the worker drains the deployment queue in
a second task on the same event loop. Both share the queue without locks;
state only changes between awaits.

Every handled signal is persisted before it is acknowledged, so a crash
replays unacknowledged signals against the last saved state.
"""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from tfdeploy.activities import Activities, RetryPolicy
from tfdeploy.checks import CheckRunCache
from tfdeploy.contracts.signals import NewRevisionSignal, UnlockRequest, UnlockSignal, parse_root_key
from tfdeploy.deploy.audit import AuditWorkflowRunnerWrapper
from tfdeploy.deploy.root_locker import CheckRunLockNotifier, RootLocker
from tfdeploy.deploy.terraform import TerraformRunner
from tfdeploy.deploy.worker import Worker, WorkerState
from tfdeploy.errors import InvariantError
from tfdeploy.jobs.runner import JobRunner
from tfdeploy.logging import bind_root, get_logger
from tfdeploy.policy import GlobalPolicy
from tfdeploy.requirements import Aggregate
from tfdeploy.revision.queue import (
    CurrentDeploymentStatus,
    DeployQueue,
    LockState,
    LockStatus,
)
from tfdeploy.revision.receiver import IdGenerator, Receiver
from tfdeploy.revision.updater import LockStateUpdater
from tfdeploy.revision.validator import Validator
from tfdeploy.workflow.state import WorkflowSnapshot, WorkflowStateStore

logger = get_logger(__name__)

Signal = NewRevisionSignal | UnlockSignal
Ack = Callable[[], Awaitable[None]]


@dataclass
class WorkflowDependencies:
    """Services shared by every root workflow of a process."""

    activities: Activities
    policy: GlobalPolicy
    state_store: WorkflowStateStore
    id_generator: IdGenerator
    job_runner: JobRunner
    workdir_root: str
    check_run_policy: RetryPolicy
    revision_receive_timeout: float


class RootWorkflow:
    def __init__(self, root_key: str, deps: WorkflowDependencies):
        self.root_key = root_key
        self.deps = deps
        self.mailbox: asyncio.Queue[tuple[Signal, Ack | None]] = asyncio.Queue()
        self.accepting = True
        self.queue_changed = asyncio.Event()
        self._unlock_waiter: asyncio.Future[UnlockRequest] | None = None
        self._task: asyncio.Task | None = None

    @property
    def task(self) -> asyncio.Task | None:
        return self._task

    def start(self) -> asyncio.Task:
        self._task = asyncio.create_task(self.run(), name=f"root-workflow:{self.root_key}")
        return self._task

    def deliver(self, signal: Signal, ack: Ack | None = None) -> None:
        if not self.accepting:
            raise RuntimeError(f"workflow {self.root_key} is shutting down")
        self.mailbox.put_nowait((signal, ack))

    async def _build(self) -> None:
        deps = self.deps
        snapshot = await deps.state_store.load(self.root_key) or WorkflowSnapshot()

        self.check_runs = CheckRunCache(deps.activities, snapshot.check_runs)
        updater = LockStateUpdater(self.check_runs)
        self.queue = DeployQueue.from_snapshot(snapshot.queue, self._lock_changed(updater))

        if snapshot.current and snapshot.current.status == CurrentDeploymentStatus.IN_PROGRESS:
            # The process died mid-deploy; run it again.
            logger.warning("requeue_interrupted_deployment", deployment_id=str(snapshot.current.deployment.id))
            self.queue.requeue_front(snapshot.current.deployment)

        runner = AuditWorkflowRunnerWrapper(
            deps.activities,
            TerraformRunner(deps.activities, self.check_runs, deps.job_runner, deps.workdir_root),
        )
        root_locker = RootLocker(
            deps.activities,
            CheckRunLockNotifier(deps.activities, deps.check_run_policy),
            self._wait_for_unlock,
        )
        self.worker = Worker(
            queue=self.queue,
            activities=deps.activities,
            validator=Validator(deps.activities),
            aggregate=Aggregate.from_policy(deps.policy, deps.activities),
            root_locker=root_locker,
            runner=runner,
            queue_changed=self.queue_changed,
            on_transition=self.persist,
            check_run_policy=deps.check_run_policy,
            latest=snapshot.latest,
            latest_loaded=snapshot.latest_loaded,
        )
        self.receiver = Receiver(
            self.queue,
            self.check_runs,
            deps.id_generator,
            self.worker.get_current_deployment,
            deps.check_run_policy,
        )

    def _lock_changed(self, updater: LockStateUpdater):
        async def callback(queue: DeployQueue) -> None:
            self.queue_changed.set()
            await updater.update_queued_revisions(queue)

        return callback

    async def _wait_for_unlock(self) -> UnlockRequest:
        self._unlock_waiter = asyncio.get_running_loop().create_future()
        try:
            return await self._unlock_waiter
        finally:
            self._unlock_waiter = None

    def snapshot(self) -> WorkflowSnapshot:
        return WorkflowSnapshot(
            queue=self.queue.to_snapshot(),
            current=self.worker.current,
            check_runs=dict(self.check_runs.entries),
            latest=self.worker.latest,
            latest_loaded=self.worker.latest_loaded,
        )

    async def persist(self) -> None:
        await self.deps.state_store.save(self.root_key, self.snapshot())

    def is_idle(self) -> bool:
        return (
            self.mailbox.empty()
            and self.queue.is_empty()
            and self.worker.current is None
            and self.worker.state != WorkerState.WORKING
            and self._unlock_waiter is None
        )

    async def run(self) -> None:
        bind_root(*parse_root_key(self.root_key))
        await self._build()
        logger.info("root_workflow_started", queued=len(self.queue))

        worker_task = asyncio.create_task(self.worker.work(), name=f"root-worker:{self.root_key}")
        try:
            while True:
                try:
                    signal, ack = await asyncio.wait_for(
                        self.mailbox.get(), timeout=self.deps.revision_receive_timeout
                    )
                except TimeoutError:
                    if self.is_idle() or worker_task.done():
                        self.accepting = False
                        logger.info("root_workflow_idle_timeout")
                        break
                    continue

                await self.handle(signal)
                await self.persist()
                if ack is not None:
                    await ack()

                if worker_task.done():
                    logger.error("root_worker_stopped")
                    self.accepting = False
                    break
        finally:
            self.accepting = False
            worker_task.cancel()
            await asyncio.gather(worker_task, return_exceptions=True)
            await self._shutdown()

    async def _shutdown(self) -> None:
        if self.queue.is_empty() and self.worker.current is None:
            await self.deps.state_store.delete(self.root_key)
        else:
            await self.persist()
        logger.info("root_workflow_stopped", queued=len(self.queue))

    async def handle(self, signal: Signal) -> None:
        if isinstance(signal, NewRevisionSignal):
            await self.receiver.receive(signal.payload)
            self.queue_changed.set()
        elif isinstance(signal, UnlockSignal):
            await self.unlock(signal.payload)
        else:
            raise InvariantError(f"unknown signal type: {type(signal).__name__}")

    async def unlock(self, request: UnlockRequest) -> None:
        """Release a diverged root and the manual-deploy lock of the queue."""
        logger.info("unlock_received", user=request.user.username)
        if self._unlock_waiter is not None and not self._unlock_waiter.done():
            self._unlock_waiter.set_result(request)

        if self.queue.get_lock_state().status == LockStatus.LOCKED:
            await self.queue.set_lock_for_merged_items(LockState(status=LockStatus.UNLOCKED))
        self.queue_changed.set()
