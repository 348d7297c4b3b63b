from datetime import UTC, datetime
from typing import Literal
import uuid

from pydantic import BaseModel, Field


def utcnow() -> datetime:
    return datetime.now(UTC)


class QueueMeta(BaseModel):
    """Metadata for all stream messages."""

    version: Literal["1"] = "1"
    correlation_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: datetime = Field(default_factory=utcnow)


class BaseMessage(QueueMeta):
    """Base class for stream messages.

    ``request_id`` identifies a delivery: a redelivered message keeps it, which
    is what makes deployment ids replay-safe.
    """

    request_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
