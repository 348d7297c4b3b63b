from typing import Protocol

from tfdeploy.errors import RequirementFetchError
from tfdeploy.policy import GlobalPolicy, TemplateKey
from tfdeploy.requirements.base import ErrorGenerator
from tfdeploy.requirements.criteria import Criteria


class TeamMemberFetcher(Protocol):
    async def list_team_members(self, installation_id: int, org: str, team_slug: str) -> list[str]: ...


class TeamRequirement:
    """Only members of the repo's configured team may deploy."""

    def __init__(self, policy: GlobalPolicy, fetcher: TeamMemberFetcher, errors: ErrorGenerator):
        self.policy = policy
        self.fetcher = fetcher
        self.errors = errors

    async def check(self, criteria: Criteria) -> None:
        repo_id = criteria.repo.id()
        team = self.policy.matching_repo(repo_id).team
        if not team:
            return

        try:
            members = await self.fetcher.list_team_members(
                criteria.installation_token, self.policy.organization, team
            )
        except Exception as e:
            raise RequirementFetchError("fetching team members", e) from e

        username = criteria.user.username
        if username in members:
            return

        raise self.errors.forbidden(
            TemplateKey.USER_FORBIDDEN,
            repo_id,
            {"user": username, "team": team, "org": self.policy.organization},
            f"User: {username} is forbidden from executing a deploy",
        )
