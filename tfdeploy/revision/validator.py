from typing import Protocol

from tfdeploy.checks import deploy_check_run_title
from tfdeploy.errors import ValidationFetchError
from tfdeploy.logging import get_logger
from tfdeploy.models import CheckRunRequest, CheckRunState, DeploymentInfo, DiffDirection, LatestDeployment, Repo

logger = get_logger(__name__)

IDENTICAL_REVISION_SUMMARY = "This revision is identical to the current revision and will not be deployed"
DIRECTION_BEHIND_SUMMARY = (
    "This revision is behind the current revision and will not be deployed.  If this is intentional, "
    "revert the default branch to this revision to trigger a new deployment."
)


class ValidatorActivities(Protocol):
    async def compare_commit(self, repo: Repo, latest_revision: str, requested_revision: str) -> DiffDirection: ...

    async def update_check_run(self, check_run_id: int, request: CheckRunRequest): ...


class Validator:
    """Decides whether a revision is newer than what is deployed.

    Rejected revisions get their check run completed with the reason.
    """

    def __init__(self, activities: ValidatorActivities):
        self.activities = activities

    async def is_valid(self, repo: Repo, candidate: DeploymentInfo, latest: LatestDeployment | None) -> bool:
        if latest is None:
            logger.info("first_deployment", revision=candidate.revision)
            return True

        if latest.revision == candidate.revision:
            logger.info("revision_identical", deployed_revision=latest.revision)
            await self._complete(repo, candidate, IDENTICAL_REVISION_SUMMARY)
            return False

        try:
            direction = await self.activities.compare_commit(repo, latest.revision, candidate.revision)
        except Exception as e:
            raise ValidationFetchError("comparing revision", e) from e

        match direction:
            case DiffDirection.AHEAD:
                logger.info("revision_ahead", deployed_revision=latest.revision)
                return True
            case DiffDirection.IDENTICAL:
                logger.info("revision_identical", deployed_revision=latest.revision)
                await self._complete(repo, candidate, IDENTICAL_REVISION_SUMMARY)
                return False
            case DiffDirection.BEHIND:
                logger.info("revision_behind", deployed_revision=latest.revision)
                await self._complete(repo, candidate, DIRECTION_BEHIND_SUMMARY)
                return False
            case DiffDirection.DIVERGED:
                # Forced deploys skip validation, so divergence is unexpected here.
                logger.error("revision_diverged", deployed_revision=latest.revision)
                return False

        raise ValidationFetchError(f"invalid commit comparison: {direction}")

    async def is_not_behind(self, repo: Repo, candidate: DeploymentInfo, latest: LatestDeployment | None) -> bool:
        """Manual deploys may redeploy or diverge from what is deployed, never go back."""
        if latest is None or latest.revision == candidate.revision:
            return True

        try:
            direction = await self.activities.compare_commit(repo, latest.revision, candidate.revision)
        except Exception as e:
            raise ValidationFetchError("comparing revision", e) from e

        if direction == DiffDirection.BEHIND:
            logger.info("revision_behind", deployed_revision=latest.revision)
            await self._complete(repo, candidate, DIRECTION_BEHIND_SUMMARY)
            return False
        return True

    async def _complete(self, repo: Repo, candidate: DeploymentInfo, summary: str) -> None:
        await self.activities.update_check_run(
            candidate.check_run_id,
            CheckRunRequest(
                title=deploy_check_run_title(candidate.root.name),
                sha=candidate.revision,
                repo=repo,
                state=CheckRunState.SUCCESS,
                summary=summary,
            ),
        )
