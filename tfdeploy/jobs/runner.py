from tfdeploy.errors import JobError
from tfdeploy.jobs.steps import StepRunners
from tfdeploy.logging import get_logger
from tfdeploy.models import Job, RootInstance, StepName

logger = get_logger(__name__)


class JobRunner:
    """Runs the steps of a job in order, stopping at the first failure."""

    def __init__(self, steps: StepRunners):
        self.steps = steps

    async def run(self, job: Job, root_instance: RootInstance) -> str:
        """Run ``job`` and return the joined output of its steps.

        Env steps feed later steps through a per-job map and never appear in the
        output.

        Raises:
            JobError: with the output gathered before the failing step.
        """
        outputs: list[str] = []
        envs: dict[str, str] = {}

        for index, step in enumerate(job.steps):
            try:
                out = await self.steps.run(step, root_instance, envs)
            except Exception as e:
                logger.error("step_failed", index=index, error=str(e))
                raise JobError(str(e), output="\n".join(outputs)) from e

            if step.step_name == StepName.ENV:
                envs[step.env_var_name] = out
                continue

            if out:
                outputs.append(out)

        return "\n".join(outputs)
