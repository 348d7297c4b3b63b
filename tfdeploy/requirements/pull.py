from tfdeploy.errors import ForbiddenError
from tfdeploy.models import PullState
from tfdeploy.requirements.criteria import Criteria


class PullRequirement:
    """Deploys from a pull request must come from an open, non-fork PR."""

    async def check(self, criteria: Criteria) -> None:
        pull = criteria.optional_pull
        if pull is None:
            return

        if pull.head_repo.owner != pull.base_repo.owner:
            raise ForbiddenError("pull request cannot be from a fork")

        if pull.state == PullState.CLOSED:
            raise ForbiddenError("deploy cannot be executed on a closed pull request")
