"""Context variables bound to every log line of a root workflow."""

from collections.abc import Iterator
from contextlib import contextmanager

import structlog


def bind_root(repo_full_name: str, root_name: str) -> None:
    """Bind repo and root for the current task."""
    structlog.contextvars.bind_contextvars(repo=repo_full_name, root=root_name)


@contextmanager
def deployment_context(deployment_id: str, revision: str) -> Iterator[None]:
    """Bind deployment id and revision while a deployment is processed."""
    with structlog.contextvars.bound_contextvars(deployment_id=deployment_id, revision=revision):
        yield


def get_deployment_id() -> str | None:
    return structlog.contextvars.get_contextvars().get("deployment_id")


def clear_context() -> None:
    """Clear all context variables."""
    structlog.contextvars.clear_contextvars()
