"""Check run requests as the deploy core sees them.

GitHub models success and failure as a ``completed`` status with a
conclusion; callers only deal with a single ``CheckRunState``.
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from .deployment import Repo

COMPLETED_STATUS = "completed"


class CheckRunState(str, Enum):
    QUEUED = "queued"
    PENDING = "in_progress"
    SUCCESS = "success"
    FAILURE = "failure"
    TIMEOUT = "timed_out"
    ACTION_REQUIRED = "action_required"
    SKIPPED = "skipped"

    def status_and_conclusion(self) -> tuple[str, str | None]:
        if self in (CheckRunState.QUEUED, CheckRunState.PENDING):
            return self.value, None
        return COMPLETED_STATUS, self.value


class CheckRunAction(BaseModel):
    model_config = ConfigDict(frozen=True)

    label: str
    description: str
    identifier: str


UNLOCK_ACTION = CheckRunAction(
    label="Unlock",
    description="Unlock the root for new deployments",
    identifier="unlock",
)


class CheckRunRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    title: str
    sha: str
    repo: Repo
    state: CheckRunState = CheckRunState.QUEUED
    summary: str = ""
    actions: list[CheckRunAction] = Field(default_factory=list)
    external_id: str = ""


class CheckRunResponse(BaseModel):
    id: int
    status: str


class DiffDirection(str, Enum):
    AHEAD = "ahead"
    BEHIND = "behind"
    IDENTICAL = "identical"
    DIVERGED = "diverged"
