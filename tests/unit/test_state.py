from conftest import make_info
import pytest

from tfdeploy.deploy.store import DeploymentStore
from tfdeploy.models import LatestDeployment, TriggerType
from tfdeploy.revision.queue import CurrentDeployment, CurrentDeploymentStatus, DeployQueue, LockState, LockStatus
from tfdeploy.workflow.state import DEPLOYMENT_ID_TTL_SECONDS, RedisIdGenerator, WorkflowSnapshot, WorkflowStateStore

ROOT_KEY = "lyft/infra||mystack"


class TestDeploymentStore:
    @pytest.mark.asyncio
    async def test_never_deployed(self, fake_redis):
        assert await DeploymentStore(fake_redis).fetch_latest("lyft/infra", "mystack") is None

    @pytest.mark.asyncio
    async def test_store_then_fetch(self, fake_redis):
        store = DeploymentStore(fake_redis)
        latest = LatestDeployment(id="1", revision="abc", root_name="mystack", repo_full_name="lyft/infra")

        await store.store_latest(latest)

        assert await store.fetch_latest("lyft/infra", "mystack") == latest
        assert await store.fetch_latest("lyft/infra", "other") is None


class TestWorkflowStateStore:
    @pytest.mark.asyncio
    async def test_missing_snapshot(self, fake_redis):
        assert await WorkflowStateStore(fake_redis).load(ROOT_KEY) is None

    @pytest.mark.asyncio
    async def test_snapshot_survives_roundtrip(self, fake_redis):
        store = WorkflowStateStore(fake_redis)
        queue = DeployQueue()
        queue.push(make_info("queued"))
        await queue.set_lock_for_merged_items(LockState(status=LockStatus.LOCKED, revision="manual"))
        current = CurrentDeployment(
            deployment=make_info("manual", trigger=TriggerType.MANUAL), status=CurrentDeploymentStatus.IN_PROGRESS
        )
        snapshot = WorkflowSnapshot(
            queue=queue.to_snapshot(),
            current=current,
            check_runs={"dep_title": 5},
            latest_loaded=True,
        )

        await store.save(ROOT_KEY, snapshot)
        loaded = await store.load(ROOT_KEY)

        assert loaded == snapshot
        assert loaded.current.deployment.trigger_type == TriggerType.MANUAL

    @pytest.mark.asyncio
    async def test_delete(self, fake_redis):
        store = WorkflowStateStore(fake_redis)
        await store.save(ROOT_KEY, WorkflowSnapshot())

        await store.delete(ROOT_KEY)

        assert await store.load(ROOT_KEY) is None

    @pytest.mark.asyncio
    async def test_root_keys_lists_saved_roots(self, fake_redis):
        store = WorkflowStateStore(fake_redis)
        await store.save(ROOT_KEY, WorkflowSnapshot())
        await store.save("lyft/infra||other", WorkflowSnapshot())
        await fake_redis.set("tfdeploy:deployment-id:req-1", "unrelated")

        assert sorted(await store.root_keys()) == ["lyft/infra||mystack", "lyft/infra||other"]


class TestRedisIdGenerator:
    @pytest.mark.asyncio
    async def test_same_request_gets_same_id(self, fake_redis):
        ids = RedisIdGenerator(fake_redis)

        first = await ids.generate("req-1")
        again = await ids.generate("req-1")

        assert first == again

    @pytest.mark.asyncio
    async def test_different_requests_get_different_ids(self, fake_redis):
        ids = RedisIdGenerator(fake_redis)

        assert await ids.generate("req-1") != await ids.generate("req-2")

    @pytest.mark.asyncio
    async def test_ids_expire(self, fake_redis):
        await RedisIdGenerator(fake_redis).generate("req-1")

        ttl = await fake_redis.ttl("tfdeploy:deployment-id:req-1")

        assert 0 < ttl <= DEPLOYMENT_ID_TTL_SECONDS
