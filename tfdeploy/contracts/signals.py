"""Signals delivered to root workflows over the signal stream."""

from typing import Annotated, Literal

from pydantic import BaseModel, Field

from tfdeploy.contracts.base import BaseMessage
from tfdeploy.models import Commit, PullRequest, Repo, Root, User

NEW_REVISION_SIGNAL = "new-revision"
UNLOCK_SIGNAL = "unlock"


class NewRevisionRequest(BaseMessage):
    """A new revision of a root is ready to deploy."""

    revision: str
    branch: str = ""
    repo: Repo
    root: Root
    user: User = Field(default_factory=User)
    pull: PullRequest | None = None
    tags: dict[str, str] = Field(default_factory=dict)

    @property
    def commit(self) -> Commit:
        return Commit(revision=self.revision, branch=self.branch)


class UnlockRequest(BaseMessage):
    unlock: bool = True
    user: User = Field(default_factory=User)


class NewRevisionSignal(BaseModel):
    signal: Literal["new-revision"] = NEW_REVISION_SIGNAL
    root_key: str
    payload: NewRevisionRequest


class UnlockSignal(BaseModel):
    signal: Literal["unlock"] = UNLOCK_SIGNAL
    root_key: str
    payload: UnlockRequest


SignalEnvelope = Annotated[NewRevisionSignal | UnlockSignal, Field(discriminator="signal")]


def root_key(repo: Repo, root_name: str) -> str:
    """Key identifying a root workflow: one per repo and root."""
    return f"{repo.full_name}||{root_name}"


def parse_root_key(key: str) -> tuple[str, str]:
    """Split a root key into repo full name and root name."""
    repo_full_name, _, root_name = key.partition("||")
    return repo_full_name, root_name
