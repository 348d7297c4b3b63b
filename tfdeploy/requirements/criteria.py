from pydantic import BaseModel, ConfigDict, Field

from tfdeploy.models import PullRequest, Repo, TriggerInfo, User


class Criteria(BaseModel):
    """Everything a requirement may inspect about a deploy request."""

    model_config = ConfigDict(frozen=True)

    user: User = Field(default_factory=User)
    branch: str = ""
    repo: Repo
    optional_pull: PullRequest | None = None
    installation_token: int = 0
    trigger_info: TriggerInfo = Field(default_factory=TriggerInfo)
