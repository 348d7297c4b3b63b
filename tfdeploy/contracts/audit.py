from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

from tfdeploy.contracts.base import utcnow

AUDIT_EVENT_VERSION = "1.0.0"


class AuditJobState(str, Enum):
    RUNNING = "RUNNING"
    SUCCESS = "SUCCESS"
    FAILURE = "FAILURE"


class AuditJobType(str, Enum):
    APPLY = "APPLY"


class AuditJobEvent(BaseModel):
    """Lifecycle record of a deploy job, published to the audit stream."""

    version: str = AUDIT_EVENT_VERSION
    id: str
    state: AuditJobState
    job_type: AuditJobType = AuditJobType.APPLY
    revision: str
    repository: str
    pull_number: int = 0
    root_name: str
    initiating_user: str = ""
    force_apply: bool = False
    start_time: datetime = Field(default_factory=utcnow)
    end_time: datetime | None = None
