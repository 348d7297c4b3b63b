import asyncio

from conftest import make_info
import pytest
import pytest_asyncio

from tfdeploy.contracts.signals import UnlockRequest
from tfdeploy.deploy.root_locker import DIVERGED_COMMITS_SUMMARY, CheckRunLockNotifier, RootLocker
from tfdeploy.errors import WrappedError
from tfdeploy.models import CheckRunState, DiffDirection, LatestDeployment, TriggerType, User


def deployed(revision: str) -> LatestDeployment:
    return LatestDeployment(id="1", revision=revision, root_name="mystack", repo_full_name="lyft/infra")


class UnlockGate:
    def __init__(self):
        self.future: asyncio.Future[UnlockRequest] = asyncio.get_running_loop().create_future()
        self.waited = False

    async def wait(self) -> UnlockRequest:
        self.waited = True
        return await self.future


@pytest_asyncio.fixture
async def gate():
    return UnlockGate()


def make_locker(activities, gate):
    return RootLocker(activities, CheckRunLockNotifier(activities), gate.wait)


class TestRootLocker:
    @pytest.mark.asyncio
    async def test_manual_deploys_never_wait(self, activities, gate):
        activities.latest[("lyft/infra", "mystack")] = deployed("old")
        activities.direction = DiffDirection.DIVERGED

        released = await make_locker(activities, gate).lock(make_info("new", trigger=TriggerType.MANUAL))

        assert not released
        assert not gate.waited

    @pytest.mark.asyncio
    async def test_first_deployment_does_not_wait(self, activities, gate):
        assert not await make_locker(activities, gate).lock(make_info("new"))
        assert activities.compared == []

    @pytest.mark.asyncio
    async def test_same_revision_does_not_compare(self, activities, gate):
        activities.latest[("lyft/infra", "mystack")] = deployed("abc")

        assert not await make_locker(activities, gate).lock(make_info("abc"))
        assert activities.compared == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("direction", [DiffDirection.AHEAD, DiffDirection.BEHIND, DiffDirection.IDENTICAL])
    async def test_non_diverged_does_not_wait(self, activities, gate, direction):
        activities.latest[("lyft/infra", "mystack")] = deployed("old")
        activities.direction = direction

        assert not await make_locker(activities, gate).lock(make_info("new"))
        assert not gate.waited

    @pytest.mark.asyncio
    async def test_diverged_merge_waits_for_unlock(self, activities, gate):
        activities.latest[("lyft/infra", "mystack")] = deployed("pr-rev")
        activities.direction = DiffDirection.DIVERGED
        locker = make_locker(activities, gate)

        task = asyncio.create_task(locker.lock(make_info("main-rev", check_run_id=9)))
        await asyncio.sleep(0)
        await asyncio.sleep(0)

        assert gate.waited
        assert not task.done()
        check_run_id, request = activities.updated[0]
        assert check_run_id == 9
        assert request.state == CheckRunState.PENDING
        assert request.summary == DIVERGED_COMMITS_SUMMARY
        assert [a.identifier for a in request.actions] == ["unlock"]

        gate.future.set_result(UnlockRequest(unlock=True, user=User(username="nish")))

        assert await task is True

    @pytest.mark.asyncio
    async def test_notify_failure_is_wrapped(self, activities, gate):
        activities.latest[("lyft/infra", "mystack")] = deployed("pr-rev")
        activities.direction = DiffDirection.DIVERGED
        activities.failures["update_check_run"] = RuntimeError("github down")

        with pytest.raises(WrappedError, match="updating check run"):
            await make_locker(activities, gate).lock(make_info("main-rev"))

        assert not gate.waited
