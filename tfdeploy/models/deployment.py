"""Identity and execution context of deployments."""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING
import uuid

from pydantic import BaseModel, ConfigDict, Field

if TYPE_CHECKING:
    from .root import Root

DEPLOYMENT_INFO_VERSION = "1.0.0"


class TriggerType(str, Enum):
    MERGE = "merge"
    MANUAL = "manual"


class TriggerInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: TriggerType = TriggerType.MERGE
    force: bool = False


class Repo(BaseModel):
    model_config = ConfigDict(frozen=True)

    owner: str
    name: str
    url: str = ""
    default_branch: str = "main"
    installation_token: int = Field(0, description="GitHub App installation id")

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.name}"

    def id(self) -> str:
        """Key used to match server-side repo policies."""
        return f"github.com/{self.full_name}"


class Commit(BaseModel):
    model_config = ConfigDict(frozen=True)

    revision: str
    branch: str = ""


class User(BaseModel):
    model_config = ConfigDict(frozen=True)

    username: str = ""


class PullState(str, Enum):
    OPEN = "open"
    CLOSED = "closed"


class PullRequest(BaseModel):
    """Snapshot of the pull request a deploy was requested from."""

    model_config = ConfigDict(frozen=True)

    number: int = 0
    base_repo: Repo
    head_repo: Repo
    state: PullState = PullState.OPEN


class DeploymentInfo(BaseModel):
    """One deployment attempt of a root at a revision.

    Immutable apart from ``check_run_id``, which is back-filled with
    ``with_check_run`` once the initial check run exists.
    """

    model_config = ConfigDict(frozen=True)

    id: uuid.UUID
    commit: Commit
    repo: Repo
    root: Root
    check_run_id: int = 0
    user: User = Field(default_factory=User)
    pull: PullRequest | None = None
    tags: dict[str, str] = Field(default_factory=dict)

    @property
    def revision(self) -> str:
        return self.commit.revision

    @property
    def trigger_type(self) -> TriggerType:
        return self.root.trigger_info.type

    def same_target(self, other: DeploymentInfo) -> bool:
        """Two deployments are duplicates if they target the same revision and root."""
        return self.commit.revision == other.commit.revision and self.root.name == other.root.name

    def with_check_run(self, check_run_id: int) -> DeploymentInfo:
        return self.model_copy(update={"check_run_id": check_run_id})

    def to_latest(self) -> LatestDeployment:
        return LatestDeployment(
            id=str(self.id),
            revision=self.commit.revision,
            check_run_id=self.check_run_id,
            root_name=self.root.name,
            repo_full_name=self.repo.full_name,
        )


class LatestDeployment(BaseModel):
    """The record persisted after a deployment attempt of a root."""

    version: str = DEPLOYMENT_INFO_VERSION
    id: str
    revision: str
    check_run_id: int = 0
    root_name: str
    repo_full_name: str


from .root import Root  # noqa: E402

DeploymentInfo.model_rebuild()
