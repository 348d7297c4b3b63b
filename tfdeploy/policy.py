"""Server-side repo policies.

Loaded once from YAML into an immutable ``GlobalPolicy`` and handed to the
requirements at construction:

    organization: lyft
    repos:
      - id: /.*/
        branch_restriction: default_branch
      - id: github.com/lyft/infra
        team: infra-deployers
        templates:
          user_forbidden: "{user} is not in {org}/{team}"

Every entry whose ``id`` matches a repo is applied in file order; a later
entry overrides the fields it sets.
"""

from enum import Enum
from pathlib import Path
import re

from pydantic import BaseModel, ConfigDict, Field, field_validator
import yaml

from tfdeploy.logging import get_logger

logger = get_logger(__name__)


class BranchRestriction(str, Enum):
    NONE = "none"
    DEFAULT_BRANCH = "default_branch"


class TemplateKey(str, Enum):
    BRANCH_FORBIDDEN = "branch_forbidden"
    USER_FORBIDDEN = "user_forbidden"


class RepoPolicy(BaseModel):
    """One ``repos:`` entry. Unset fields do not override earlier matches."""

    model_config = ConfigDict(frozen=True)

    id: str
    branch_restriction: BranchRestriction | None = None
    team: str | None = None
    templates: dict[TemplateKey, str] = Field(default_factory=dict)

    @field_validator("id")
    @classmethod
    def validate_id(cls, v: str) -> str:
        if len(v) > 1 and v.startswith("/") and v.endswith("/"):
            try:
                re.compile(v[1:-1])
            except re.error as e:
                raise ValueError(f"invalid repo id regex {v}: {e}") from e
        return v

    def matches(self, repo_id: str) -> bool:
        if len(self.id) > 1 and self.id.startswith("/") and self.id.endswith("/"):
            return re.search(self.id[1:-1], repo_id) is not None
        return self.id == repo_id


class MatchedPolicy(BaseModel):
    """The folded policy that applies to one repo."""

    model_config = ConfigDict(frozen=True)

    branch_restriction: BranchRestriction = BranchRestriction.NONE
    team: str = ""
    templates: dict[TemplateKey, str] = Field(default_factory=dict)


class GlobalPolicy(BaseModel):
    model_config = ConfigDict(frozen=True)

    organization: str = ""
    repos: list[RepoPolicy] = Field(default_factory=list)

    def matching_repo(self, repo_id: str) -> MatchedPolicy:
        branch_restriction = BranchRestriction.NONE
        team = ""
        templates: dict[TemplateKey, str] = {}
        for policy in self.repos:
            if not policy.matches(repo_id):
                continue
            if policy.branch_restriction is not None:
                branch_restriction = policy.branch_restriction
            if policy.team is not None:
                team = policy.team
            templates.update(policy.templates)
        return MatchedPolicy(branch_restriction=branch_restriction, team=team, templates=templates)


def load_policy(path: str | Path | None) -> GlobalPolicy:
    """Load the policy file. A missing path yields an empty policy."""
    if not path:
        logger.info("policy_file_not_configured")
        return GlobalPolicy()

    with open(path) as f:
        raw = yaml.safe_load(f) or {}

    policy = GlobalPolicy.model_validate(raw)
    logger.info("policy_loaded", path=str(path), repos=len(policy.repos))
    return policy
