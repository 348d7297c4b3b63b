import os

from conftest import make_info, make_root
import pytest

from tfdeploy.checks import CheckRunCache
from tfdeploy.deploy.terraform import MAX_SUMMARY_LENGTH, TerraformRunner, render_output
from tfdeploy.errors import JobError, StepError
from tfdeploy.jobs.runner import JobRunner
from tfdeploy.jobs.steps import EnvStepRunner, RunStepRunner, StepRunners
from tfdeploy.models import CheckRunState, Step, StepName


def run_step(command: str) -> Step:
    return Step(step_name=StepName.RUN, run_command=command)


@pytest.fixture
def runner(activities, tmp_path):
    run = RunStepRunner(activities, default_tf_version="1.5.7")
    return TerraformRunner(
        activities,
        CheckRunCache(activities),
        JobRunner(StepRunners(run, EnvStepRunner(run))),
        workdir_root=str(tmp_path),
    )


def states(activities) -> list[CheckRunState]:
    return [r.state for r in activities.created] + [r.state for _, r in activities.updated]


@pytest.mark.asyncio
async def test_checkout_plan_apply(runner, activities, tmp_path):
    activities.command_outputs["terraform plan"] = "Plan: 1 to add"
    activities.command_outputs["terraform apply"] = "Apply complete!"
    info = make_info("abc", root=make_root(plan=[run_step("terraform plan")], apply=[run_step("terraform apply")]))

    await runner.run(info)

    checkout, plan, apply = activities.commands
    assert "git clone --quiet https://github.com/lyft/infra.git" in checkout[0]
    assert "checkout --quiet abc" in checkout[0]
    assert checkout[1] == str(tmp_path)
    repo_path = os.path.join(str(tmp_path), str(info.id))
    assert plan[1] == os.path.join(repo_path, "stacks/mystack")
    assert apply[0] == "terraform apply"

    assert states(activities) == [CheckRunState.PENDING, CheckRunState.PENDING, CheckRunState.SUCCESS]
    final = activities.updated[-1][1]
    assert "Plan: 1 to add" in final.summary
    assert "Apply complete!" in final.summary
    assert not os.path.exists(repo_path)


@pytest.mark.asyncio
async def test_failed_plan_skips_apply(runner, activities):
    activities.command_outputs["init"] = "initialized"
    activities.command_outputs["terraform plan"] = StepError("exit status 1: bad config")
    info = make_info(
        "abc", root=make_root(plan=[run_step("init"), run_step("terraform plan")], apply=[run_step("terraform apply")])
    )

    with pytest.raises(JobError):
        await runner.run(info)

    assert "terraform apply" not in [c[0] for c in activities.commands]
    final = activities.updated[-1][1]
    assert final.state == CheckRunState.FAILURE
    assert "initialized" in final.summary
    assert "plan failed" in final.summary


@pytest.mark.asyncio
async def test_checkout_failure_fails_check_run(runner, activities):
    info = make_info("abc")
    checkout_error = StepError("repository not found")

    class FailingCheckout(dict):
        def get(self, command, default=None):
            return checkout_error if command.startswith("git clone") else default

    activities.command_outputs = FailingCheckout()

    with pytest.raises(StepError):
        await runner.run(info)

    request = activities.created[0]
    assert request.state == CheckRunState.FAILURE
    assert "repository not found" in request.summary


@pytest.mark.asyncio
async def test_check_run_errors_do_not_fail_deploy(runner, activities):
    activities.failures["create_check_run"] = RuntimeError("github down")

    await runner.run(make_info("abc"))


def test_render_output_truncates_from_the_front():
    rendered = render_output("plan", "x" * (MAX_SUMMARY_LENGTH + 10) + "END")

    assert rendered.startswith("**plan**\n```\n...\n")
    assert rendered.endswith("END\n```")


def test_render_output_empty():
    assert render_output("apply", "") == "**apply**: no output"
