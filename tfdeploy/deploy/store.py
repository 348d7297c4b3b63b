"""Latest deployed revision per root, kept in Redis."""

from typing import Any

from tfdeploy.logging import get_logger
from tfdeploy.models import LatestDeployment

logger = get_logger(__name__)


def _decode(raw: Any) -> str:
    return raw.decode() if isinstance(raw, bytes) else raw


class DeploymentStore:
    def __init__(self, redis: Any, key_prefix: str = "tfdeploy:latest"):
        self.redis = redis
        self.key_prefix = key_prefix

    def _key(self, repo_full_name: str, root_name: str) -> str:
        return f"{self.key_prefix}:{repo_full_name}:{root_name}"

    async def fetch_latest(self, repo_full_name: str, root_name: str) -> LatestDeployment | None:
        """Return the latest deployment of the root, or None if it was never deployed."""
        raw = await self.redis.get(self._key(repo_full_name, root_name))
        if raw is None:
            return None
        return LatestDeployment.model_validate_json(_decode(raw))

    async def store_latest(self, deployment: LatestDeployment) -> None:
        await self.redis.set(
            self._key(deployment.repo_full_name, deployment.root_name), deployment.model_dump_json()
        )
        logger.info(
            "latest_deployment_stored",
            repo=deployment.repo_full_name,
            root=deployment.root_name,
            revision=deployment.revision,
        )
