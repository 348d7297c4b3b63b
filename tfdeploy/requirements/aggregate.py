from tfdeploy.policy import GlobalPolicy
from tfdeploy.requirements.base import ErrorGenerator, Requirement
from tfdeploy.requirements.branch import BranchRestrictionRequirement
from tfdeploy.requirements.criteria import Criteria
from tfdeploy.requirements.pull import PullRequirement
from tfdeploy.requirements.team import TeamMemberFetcher, TeamRequirement


class Aggregate:
    """Runs every requirement in order and raises the first failure.

    Non-overrideable requirements always run. Overrideable ones are skipped
    for forced deploys.
    """

    def __init__(self, overrideable: list[Requirement], non_overrideable: list[Requirement]):
        self.overrideable = overrideable
        self.non_overrideable = non_overrideable

    @classmethod
    def from_policy(cls, policy: GlobalPolicy, fetcher: TeamMemberFetcher) -> "Aggregate":
        errors = ErrorGenerator(policy)
        return cls(
            # order matters, the first failure wins
            overrideable=[
                BranchRestrictionRequirement(policy, errors),
                TeamRequirement(policy, fetcher, errors),
            ],
            non_overrideable=[PullRequirement()],
        )

    async def check(self, criteria: Criteria) -> None:
        for requirement in self.non_overrideable:
            await requirement.check(criteria)

        if criteria.trigger_info.force:
            return

        for requirement in self.overrideable:
            await requirement.check(criteria)
