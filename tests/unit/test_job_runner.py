from conftest import make_repo, make_root
import pytest

from tfdeploy.errors import JobError, StepError
from tfdeploy.jobs.runner import JobRunner
from tfdeploy.jobs.steps import EnvStepRunner, RunStepRunner, StepRunners, plan_filename
from tfdeploy.models import Commit, Job, RootInstance, Step, StepName


@pytest.fixture
def root_instance():
    return RootInstance(
        root=make_root(),
        repo=make_repo(),
        commit=Commit(revision="abc123", branch="main"),
        repo_path="/work/checkout",
    )


@pytest.fixture
def runner(activities):
    run = RunStepRunner(activities, default_tf_version="1.5.7")
    return JobRunner(StepRunners(run, EnvStepRunner(run)))


def run_step(command: str, *extra_args: str) -> Step:
    return Step(step_name=StepName.RUN, run_command=command, extra_args=list(extra_args))


class TestRunStep:
    @pytest.mark.asyncio
    async def test_runs_in_root_directory_with_default_env(self, runner, activities, root_instance):
        activities.command_outputs["terraform init"] = "initialized"

        output = await runner.run(Job(steps=[run_step("terraform init")]), root_instance)

        assert output == "initialized"
        command, cwd, env = activities.commands[0]
        assert command == "terraform init"
        assert cwd == "/work/checkout/stacks/mystack"
        assert env["ATLANTIS_TERRAFORM_VERSION"] == "1.4.0"
        assert env["BASE_REPO_OWNER"] == "lyft"
        assert env["BASE_REPO_NAME"] == "infra"
        assert env["HEAD_COMMIT"] == "abc123"
        assert env["DIR"] == cwd
        assert env["PROJECT_NAME"] == "mystack"
        assert env["REPO_REL_DIR"] == "stacks/mystack"
        assert env["PLANFILE"] == f"{cwd}/{plan_filename('mystack')}"

    @pytest.mark.asyncio
    async def test_extra_args_are_quoted(self, runner, activities, root_instance):
        await runner.run(Job(steps=[run_step("terraform plan", "-var", "name=a b")]), root_instance)

        assert activities.commands[0][0] == "terraform plan -var 'name=a b'"

    @pytest.mark.asyncio
    async def test_default_tf_version_when_root_has_none(self, activities, root_instance):
        instance = root_instance.model_copy(update={"root": root_instance.root.model_copy(update={"tf_version": ""})})
        run = RunStepRunner(activities, default_tf_version="1.5.7")

        await run.run(run_step("terraform version"), instance, {})

        assert activities.commands[0][2]["ATLANTIS_TERRAFORM_VERSION"] == "1.5.7"


class TestEnvStep:
    @pytest.mark.asyncio
    async def test_literal_value_feeds_later_steps(self, runner, activities, root_instance):
        job = Job(
            steps=[
                Step(step_name=StepName.ENV, env_var_name="TARGET", env_var_value="prod"),
                run_step("terraform plan"),
            ]
        )

        await runner.run(job, root_instance)

        assert len(activities.commands) == 1
        assert activities.commands[0][2]["TARGET"] == "prod"

    @pytest.mark.asyncio
    async def test_command_output_trims_one_trailing_newline(self, runner, activities, root_instance):
        activities.command_outputs["cat token"] = "secret\n\n"
        job = Job(
            steps=[
                Step(step_name=StepName.ENV, env_var_name="TOKEN", run_command="cat token"),
                run_step("terraform apply"),
            ]
        )

        await runner.run(job, root_instance)

        assert activities.commands[1][2]["TOKEN"] == "secret\n"

    @pytest.mark.asyncio
    async def test_env_output_not_in_job_output(self, runner, activities, root_instance):
        activities.command_outputs["echo hidden"] = "hidden\n"
        activities.command_outputs["terraform plan"] = "plan output"
        job = Job(
            steps=[
                Step(step_name=StepName.ENV, env_var_name="HIDDEN", run_command="echo hidden"),
                run_step("terraform plan"),
            ]
        )

        assert await runner.run(job, root_instance) == "plan output"


class TestJobRunner:
    @pytest.mark.asyncio
    async def test_joins_outputs(self, runner, activities, root_instance):
        activities.command_outputs["one"] = "first"
        activities.command_outputs["two"] = "second"

        output = await runner.run(Job(steps=[run_step("one"), run_step("two")]), root_instance)

        assert output == "first\nsecond"

    @pytest.mark.asyncio
    async def test_stops_at_first_failure_with_partial_output(self, runner, activities, root_instance):
        activities.command_outputs["one"] = "first"
        activities.command_outputs["two"] = StepError("exit status 1")

        with pytest.raises(JobError, match="exit status 1") as exc:
            await runner.run(Job(steps=[run_step("one"), run_step("two"), run_step("three")]), root_instance)

        assert exc.value.output == "first"
        assert [c[0] for c in activities.commands] == ["one", "two"]

    @pytest.mark.asyncio
    async def test_unknown_step_name_fails_job(self, runner, root_instance):
        step = Step.model_construct(step_name="bogus", run_command="x", extra_args=[])

        with pytest.raises(JobError, match="unknown step name"):
            await runner.run(Job(steps=[step]), root_instance)

    @pytest.mark.asyncio
    async def test_empty_job(self, runner, root_instance):
        assert await runner.run(Job(), root_instance) == ""
