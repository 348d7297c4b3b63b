"""Runners for the individual steps of a job."""

import os
import shlex
from typing import Protocol

from tfdeploy.errors import StepError
from tfdeploy.models import RootInstance, Step, StepName

DEFAULT_WORKSPACE = "default"
PLANFILE_SLASH_REPLACE = "::"


class CommandActivities(Protocol):
    async def execute_command(self, command: str, cwd: str, env: dict[str, str]) -> str: ...


def plan_filename(project_name: str, workspace: str = DEFAULT_WORKSPACE) -> str:
    if not project_name:
        return f"{workspace}.tfplan"
    return f"{project_name.replace('/', PLANFILE_SLASH_REPLACE)}-{workspace}.tfplan"


def show_filename(project_name: str, workspace: str = DEFAULT_WORKSPACE) -> str:
    if not project_name:
        return f"{workspace}.json"
    return f"{project_name.replace('/', PLANFILE_SLASH_REPLACE)}-{workspace}.json"


def default_env(root_instance: RootInstance, tf_version: str) -> dict[str, str]:
    """Variables every command of a root sees."""
    path = root_instance.path
    return {
        "ATLANTIS_TERRAFORM_VERSION": tf_version,
        "BASE_REPO_NAME": root_instance.repo.name,
        "BASE_REPO_OWNER": root_instance.repo.owner,
        "DIR": path,
        "HEAD_COMMIT": root_instance.commit.revision,
        "PLANFILE": os.path.join(path, plan_filename(root_instance.name)),
        "SHOWFILE": os.path.join(path, show_filename(root_instance.name)),
        "PROJECT_NAME": root_instance.name,
        "REPO_REL_DIR": root_instance.relative_path,
    }


class RunStepRunner:
    """Runs a custom shell command in the root's directory."""

    def __init__(self, activities: CommandActivities, default_tf_version: str):
        self.activities = activities
        self.default_tf_version = default_tf_version

    async def run(self, step: Step, root_instance: RootInstance, envs: dict[str, str]) -> str:
        tf_version = root_instance.root.tf_version or self.default_tf_version
        env = {**default_env(root_instance, tf_version), **envs}

        command = step.run_command
        if step.extra_args:
            command = " ".join([command, *(shlex.quote(a) for a in step.extra_args)])

        return await self.activities.execute_command(command, root_instance.path, env)


class EnvStepRunner:
    """Computes the value of an env step.

    A literal ``env_var_value`` wins; otherwise the command output is used with
    one trailing newline removed.
    """

    def __init__(self, run_runner: RunStepRunner):
        self.run_runner = run_runner

    async def run(self, step: Step, root_instance: RootInstance, envs: dict[str, str]) -> str:
        if step.env_var_value:
            return step.env_var_value

        output = await self.run_runner.run(step, root_instance, envs)
        return output.removesuffix("\n")


class StepRunners:
    """Dispatches a step to its runner by name."""

    def __init__(self, run: RunStepRunner, env: EnvStepRunner):
        self._runners = {StepName.RUN: run, StepName.ENV: env}

    async def run(self, step: Step, root_instance: RootInstance, envs: dict[str, str]) -> str:
        runner = self._runners.get(step.step_name)
        if runner is None:
            raise StepError(f"unknown step name: {step.step_name}")
        return await runner.run(step, root_instance, envs)
