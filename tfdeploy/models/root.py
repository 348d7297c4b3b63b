"""Root configuration: the deployable unit and its plan/apply jobs."""

from enum import Enum
import os

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .deployment import Commit, Repo, TriggerInfo


class StepName(str, Enum):
    RUN = "run"
    ENV = "env"


class Step(BaseModel):
    """A single unit of work inside a job."""

    model_config = ConfigDict(frozen=True)

    step_name: StepName
    extra_args: list[str] = Field(default_factory=list)
    # Custom command for run steps, or the command whose output populates an env step.
    run_command: str = ""
    env_var_name: str = ""
    env_var_value: str = ""

    @model_validator(mode="after")
    def validate_env_step(self) -> "Step":
        if self.step_name == StepName.ENV:
            if not self.env_var_name:
                raise ValueError("env step requires env_var_name")
            if not self.env_var_value and not self.run_command:
                raise ValueError(
                    f"env step {self.env_var_name} requires either env_var_value or run_command"
                )
        elif not self.run_command:
            raise ValueError("run step requires run_command")
        return self


class Job(BaseModel):
    model_config = ConfigDict(frozen=True)

    steps: list[Step] = Field(default_factory=list)


class Root(BaseModel):
    """A named, path-scoped Terraform configuration unit within a repository."""

    model_config = ConfigDict(frozen=True)

    name: str
    path: str = Field(..., description="Path of the root relative to the repo")
    tf_version: str = ""
    plan: Job = Field(default_factory=Job)
    apply: Job = Field(default_factory=Job)
    trigger_info: TriggerInfo = Field(default_factory=TriggerInfo)


class RootInstance(BaseModel):
    """A root checked out at a given commit."""

    model_config = ConfigDict(frozen=True)

    root: Root
    repo: Repo
    commit: Commit
    repo_path: str = Field(..., description="Local checkout of the repository")

    @property
    def name(self) -> str:
        return self.root.name

    @property
    def path(self) -> str:
        """Absolute working directory of the root."""
        return os.path.join(self.repo_path, self.root.path)

    @property
    def relative_path(self) -> str:
        return os.path.relpath(self.path, self.repo_path)
