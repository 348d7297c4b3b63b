from .config import get_logger, setup_logging
from .context import bind_root, clear_context, deployment_context, get_deployment_id

__all__ = [
    "setup_logging",
    "get_logger",
    "bind_root",
    "deployment_context",
    "get_deployment_id",
    "clear_context",
]
