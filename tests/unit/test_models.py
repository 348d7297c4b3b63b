from conftest import make_info, make_repo, make_root
from pydantic import ValidationError
import pytest

from tfdeploy.models import (
    CheckRunState,
    Commit,
    RootInstance,
    Step,
    StepName,
    TriggerType,
)


class TestStep:
    def test_run_step_requires_command(self):
        with pytest.raises(ValidationError, match="run step requires run_command"):
            Step(step_name=StepName.RUN)

    def test_env_step_requires_name(self):
        with pytest.raises(ValidationError, match="env_var_name"):
            Step(step_name=StepName.ENV, env_var_value="x")

    def test_env_step_requires_value_or_command(self):
        with pytest.raises(ValidationError, match="either env_var_value or run_command"):
            Step(step_name=StepName.ENV, env_var_name="FOO")

    def test_env_step_with_command(self):
        step = Step(step_name=StepName.ENV, env_var_name="FOO", run_command="echo hi")
        assert step.env_var_value == ""


class TestCheckRunState:
    @pytest.mark.parametrize(
        ("state", "expected"),
        [
            (CheckRunState.QUEUED, ("queued", None)),
            (CheckRunState.PENDING, ("in_progress", None)),
            (CheckRunState.SUCCESS, ("completed", "success")),
            (CheckRunState.ACTION_REQUIRED, ("completed", "action_required")),
            (CheckRunState.TIMEOUT, ("completed", "timed_out")),
        ],
    )
    def test_status_and_conclusion(self, state, expected):
        assert state.status_and_conclusion() == expected


class TestDeploymentInfo:
    def test_same_target_ignores_id(self):
        assert make_info("abc").same_target(make_info("abc"))
        assert not make_info("abc").same_target(make_info("def"))

    def test_same_target_compares_root(self):
        other = make_info("abc", root=make_root(name="other"))
        assert not make_info("abc").same_target(other)

    def test_to_latest(self):
        info = make_info("abc", check_run_id=3)

        latest = info.to_latest()

        assert latest.id == str(info.id)
        assert latest.revision == "abc"
        assert latest.check_run_id == 3
        assert latest.root_name == "mystack"
        assert latest.repo_full_name == "lyft/infra"

    def test_trigger_type_comes_from_root(self):
        assert make_info(trigger=TriggerType.MANUAL).trigger_type == TriggerType.MANUAL


def test_repo_id():
    assert make_repo().id() == "github.com/lyft/infra"


def test_root_instance_paths():
    instance = RootInstance(
        root=make_root(),
        repo=make_repo(),
        commit=Commit(revision="abc", branch="main"),
        repo_path="/tmp/checkout",
    )

    assert instance.path == "/tmp/checkout/stacks/mystack"
    assert instance.relative_path == "stacks/mystack"
