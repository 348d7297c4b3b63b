"""Exception hierarchy for the deploy core.

Policy errors (``ForbiddenError``) are shown verbatim to users. Infrastructure
errors wrap their cause with a short context string so operators can trace
where a remote call failed. Programming errors fail loudly.
"""

DEFAULT_FORBIDDEN_TEMPLATE = "See error details below:"


class DeployError(Exception):
    """Base class for all tfdeploy errors."""


class ForbiddenError(DeployError):
    """A requirement rejected the deployment.

    ``details`` is the specific reason, ``template`` the human readable
    explanation configured for the repo.
    """

    def __init__(self, details: str, template: str = DEFAULT_FORBIDDEN_TEMPLATE):
        super().__init__(details)
        self.details = details
        self.template = template

    def __str__(self) -> str:
        return self.details


class WrappedError(DeployError):
    """Infrastructure failure with context, chained to its cause."""

    def __init__(self, context: str, cause: BaseException | None = None):
        message = f"{context}: {cause}" if cause is not None else context
        super().__init__(message)
        self.context = context
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause


class RequirementFetchError(WrappedError):
    """A requirement could not gather the data it needs (e.g. team members)."""


class ValidationFetchError(WrappedError):
    """The revision validator could not compare revisions."""


class ActivityError(WrappedError):
    """A remote call exhausted its retry policy."""

    def __init__(self, activity: str, attempts: int, cause: BaseException | None = None):
        super().__init__(f"activity {activity} failed after {attempts} attempt(s)", cause)
        self.activity = activity
        self.attempts = attempts


class StepError(DeployError):
    """A single step failed to execute."""


class JobError(DeployError):
    """A job stopped on a failing step. ``output`` holds progress so far."""

    def __init__(self, message: str, output: str = ""):
        super().__init__(message)
        self.output = output


class QueueEmptyError(DeployError):
    """Pop was called on an empty queue."""


class InvariantError(DeployError):
    """Internal state contradicts an invariant; this is a bug."""
