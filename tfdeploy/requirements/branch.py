from tfdeploy.policy import BranchRestriction, GlobalPolicy, TemplateKey
from tfdeploy.requirements.base import ErrorGenerator
from tfdeploy.requirements.criteria import Criteria


class BranchRestrictionRequirement:
    def __init__(self, policy: GlobalPolicy, errors: ErrorGenerator):
        self.policy = policy
        self.errors = errors

    async def check(self, criteria: Criteria) -> None:
        repo_id = criteria.repo.id()
        match = self.policy.matching_repo(repo_id)

        if (
            match.branch_restriction == BranchRestriction.DEFAULT_BRANCH
            and criteria.branch != criteria.repo.default_branch
        ):
            raise self.errors.forbidden(
                TemplateKey.BRANCH_FORBIDDEN,
                repo_id,
                {"default_branch": criteria.repo.default_branch, "branch": criteria.branch},
                f"deploys are forbidden on {criteria.branch} branch",
            )
