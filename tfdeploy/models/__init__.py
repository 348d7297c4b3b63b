from .check_run import (
    COMPLETED_STATUS,
    UNLOCK_ACTION,
    CheckRunAction,
    CheckRunRequest,
    CheckRunResponse,
    CheckRunState,
    DiffDirection,
)
from .deployment import (
    Commit,
    DeploymentInfo,
    LatestDeployment,
    PullRequest,
    PullState,
    Repo,
    TriggerInfo,
    TriggerType,
    User,
)
from .root import Job, Root, RootInstance, Step, StepName

__all__ = [
    "COMPLETED_STATUS",
    "UNLOCK_ACTION",
    "CheckRunAction",
    "CheckRunRequest",
    "CheckRunResponse",
    "CheckRunState",
    "Commit",
    "DeploymentInfo",
    "DiffDirection",
    "Job",
    "LatestDeployment",
    "PullRequest",
    "PullState",
    "Repo",
    "Root",
    "RootInstance",
    "Step",
    "StepName",
    "TriggerInfo",
    "TriggerType",
    "User",
]
