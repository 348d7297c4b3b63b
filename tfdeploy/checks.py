"""Check run bookkeeping for deployments.

``CheckRunCache`` remembers which check run belongs to which deployment so
callers never decide between the create and update APIs. An entry is evicted
once GitHub reports the run completed, after which it is no longer updated.
"""

from tfdeploy.activities import Activities, RetryPolicy
from tfdeploy.errors import WrappedError
from tfdeploy.logging import get_logger
from tfdeploy.models import COMPLETED_STATUS, CheckRunRequest

logger = get_logger(__name__)

KEY_DELIM = "_"

QUEUED_SUMMARY = "This deploy is queued and will be processed as soon as possible."


def deploy_check_run_title(root_name: str) -> str:
    return f"tfdeploy/deploy: {root_name}"


def revision_url_markdown(repo_full_name: str, revision: str) -> str:
    return f"[{revision}](https://github.com/{repo_full_name}/commit/{revision})"


def run_url_markdown(repo_full_name: str, revision: str, check_run_id: int) -> str:
    return f"[{revision}](https://github.com/{repo_full_name}/runs/{check_run_id})"


def locked_summary(repo_full_name: str, lock_revision: str) -> str:
    return (
        "This deploy is locked from a manual deployment for revision "
        f"{revision_url_markdown(repo_full_name, lock_revision)}.  Unlock to proceed."
    )


class CheckRunCache:
    def __init__(self, activities: Activities, entries: dict[str, int] | None = None):
        self.activities = activities
        self.entries: dict[str, int] = dict(entries or {})

    async def create_or_update(
        self, deployment_id: str, request: CheckRunRequest, policy: RetryPolicy | None = None
    ) -> int:
        """Create the deployment's check run on first use, update it afterwards."""
        key = deployment_id + KEY_DELIM + request.title
        request = request.model_copy(update={"external_id": deployment_id})
        check_run_id = self.entries.get(key)

        if check_run_id is None:
            try:
                resp = await self.activities.create_check_run(request, policy)
            except Exception as e:
                raise WrappedError("creating check run", e) from e
            logger.debug("check_run_cached", deployment_id=deployment_id, check_run_id=resp.id)
            self.entries[key] = resp.id
            self._evict_if_completed(resp.status, key)
            return resp.id

        try:
            resp = await self.activities.update_check_run(check_run_id, request, policy)
        except Exception as e:
            raise WrappedError(f"updating check run with id: {check_run_id}", e) from e
        self._evict_if_completed(resp.status, key)
        return check_run_id

    def _evict_if_completed(self, status: str, key: str) -> None:
        if status == COMPLETED_STATUS:
            self.entries.pop(key, None)
