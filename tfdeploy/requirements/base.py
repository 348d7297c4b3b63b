from typing import Any, Protocol

from tfdeploy.errors import DEFAULT_FORBIDDEN_TEMPLATE, ForbiddenError
from tfdeploy.logging import get_logger
from tfdeploy.policy import GlobalPolicy, TemplateKey
from tfdeploy.requirements.criteria import Criteria

logger = get_logger(__name__)


class Requirement(Protocol):
    async def check(self, criteria: Criteria) -> None:
        """Return normally when the deploy is allowed, raise otherwise."""


class ErrorGenerator:
    """Builds ForbiddenErrors whose template comes from the repo's policy.

    Templates use ``str.format`` fields filled from ``data``. A missing or
    broken template falls back to the default text.
    """

    def __init__(self, policy: GlobalPolicy):
        self.policy = policy

    def forbidden(self, key: TemplateKey, repo_id: str, data: dict[str, Any], details: str) -> ForbiddenError:
        template = self.policy.matching_repo(repo_id).templates.get(key)
        content = DEFAULT_FORBIDDEN_TEMPLATE
        if template:
            try:
                content = template.format(**data)
            except (KeyError, IndexError, ValueError):
                logger.warning("template_load_failed", template=key.value, repo=repo_id)
        return ForbiddenError(details, template=content)
