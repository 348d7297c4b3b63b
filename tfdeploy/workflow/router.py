import asyncio
from collections.abc import Callable

from pydantic import TypeAdapter, ValidationError

from tfdeploy.contracts.signals import SignalEnvelope
from tfdeploy.logging import get_logger
from tfdeploy.redis import RedisStreamClient, StreamMessage
from tfdeploy.workflow.root import RootWorkflow
from tfdeploy.workflow.state import WorkflowStateStore

logger = get_logger(__name__)

_signal_adapter: TypeAdapter = TypeAdapter(SignalEnvelope)


class SignalRouter:
    """Consumes the signal stream and hands each signal to its root workflow.

    Workflows are started on demand and forgotten once they stop. A message
    is acknowledged by the workflow after it has been handled and persisted.
    Roots with saved pending work are resumed on start and whenever the
    stream is quiet, so work left by a stopped process or a failed worker is
    picked up without a new signal.
    """

    def __init__(
        self,
        redis: RedisStreamClient,
        stream: str,
        group: str,
        consumer: str,
        workflow_factory: Callable[[str], RootWorkflow],
        block_ms: int = 5000,
        state_store: WorkflowStateStore | None = None,
    ):
        self.redis = redis
        self.stream = stream
        self.group = group
        self.consumer = consumer
        self.workflow_factory = workflow_factory
        self.block_ms = block_ms
        self.state_store = state_store
        self.workflows: dict[str, RootWorkflow] = {}
        self._running = False

    async def run(self) -> None:
        self._running = True
        logger.info("signal_router_starting", stream=self.stream, group=self.group)
        try:
            await self.resume_saved()
            async for message in self.redis.consume(self.stream, self.group, self.consumer, block_ms=self.block_ms):
                if not self._running:
                    break
                if message is None:
                    await self.resume_saved()
                    continue
                await self.dispatch(message)
        finally:
            await self.shutdown()

    def stop(self) -> None:
        self._running = False

    async def resume_saved(self) -> None:
        if self.state_store is None:
            return
        try:
            root_keys = await self.state_store.root_keys()
        except Exception as e:
            logger.error("saved_workflows_scan_failed", error=str(e))
            return

        for root_key in root_keys:
            if root_key in self.workflows:
                continue
            logger.info("root_workflow_resumed", root_key=root_key)
            await self._workflow_for(root_key)

    async def dispatch(self, message: StreamMessage) -> None:
        try:
            signal = _signal_adapter.validate_python(message.data)
        except ValidationError as e:
            logger.error("invalid_signal", message_id=message.message_id, error=str(e))
            await self.redis.ack(self.stream, self.group, message.message_id)
            return

        workflow = await self._workflow_for(signal.root_key)

        async def ack() -> None:
            await self.redis.ack(self.stream, self.group, message.message_id)

        workflow.deliver(signal, ack)
        logger.debug("signal_dispatched", signal=signal.signal, root_key=signal.root_key)

    async def _workflow_for(self, root_key: str) -> RootWorkflow:
        workflow = self.workflows.get(root_key)
        if workflow is not None and workflow.accepting:
            return workflow

        if workflow is not None and workflow.task is not None:
            # Let the stopping workflow save its state before a new one loads it.
            await asyncio.gather(workflow.task, return_exceptions=True)

        workflow = self.workflow_factory(root_key)
        self.workflows[root_key] = workflow
        task = workflow.start()
        task.add_done_callback(lambda t, key=root_key, wf=workflow: self._forget(key, wf, t))
        return workflow

    def _forget(self, root_key: str, workflow: RootWorkflow, task: asyncio.Task) -> None:
        if not task.cancelled() and task.exception() is not None:
            logger.error("root_workflow_crashed", root_key=root_key, error=str(task.exception()))
        if self.workflows.get(root_key) is workflow:
            del self.workflows[root_key]

    async def shutdown(self) -> None:
        tasks = [w.task for w in self.workflows.values() if w.task is not None]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self.workflows.clear()
        logger.info("signal_router_stopped")
