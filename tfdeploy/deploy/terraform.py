import asyncio
import os
import shlex
import shutil

from tfdeploy.activities import Activities
from tfdeploy.checks import CheckRunCache, deploy_check_run_title
from tfdeploy.errors import JobError, StepError
from tfdeploy.jobs.runner import JobRunner
from tfdeploy.logging import get_logger
from tfdeploy.models import CheckRunRequest, CheckRunState, DeploymentInfo, Job, RootInstance

logger = get_logger(__name__)

# GitHub rejects check run summaries above 65535 characters.
MAX_SUMMARY_LENGTH = 60000


def render_output(job_name: str, output: str) -> str:
    if len(output) > MAX_SUMMARY_LENGTH:
        output = "...\n" + output[-MAX_SUMMARY_LENGTH:]
    return f"**{job_name}**\n```\n{output}\n```" if output else f"**{job_name}**: no output"


class TerraformRunner:
    """Checks out a root at the deployment's revision, then runs its plan and apply jobs."""

    def __init__(
        self,
        activities: Activities,
        check_runs: CheckRunCache,
        job_runner: JobRunner,
        workdir_root: str,
    ):
        self.activities = activities
        self.check_runs = check_runs
        self.job_runner = job_runner
        self.workdir_root = workdir_root

    async def run(self, info: DeploymentInfo) -> None:
        repo_path = os.path.join(self.workdir_root, str(info.id))
        try:
            root_instance = await self._checkout(info, repo_path)

            summaries: list[str] = []
            for job_name, job in (("plan", info.root.plan), ("apply", info.root.apply)):
                await self._update(info, CheckRunState.PENDING, "\n\n".join([*summaries, f"Running {job_name}..."]))
                output = await self._run_job(info, job_name, job, root_instance, summaries)
                summaries.append(render_output(job_name, output))

            await self._update(info, CheckRunState.SUCCESS, "\n\n".join(summaries))
            logger.info("deploy_succeeded", root=info.root.name, revision=info.revision)
        finally:
            await asyncio.to_thread(shutil.rmtree, repo_path, True)

    async def _run_job(
        self, info: DeploymentInfo, job_name: str, job: Job, root_instance: RootInstance, summaries: list[str]
    ) -> str:
        try:
            return await self.job_runner.run(job, root_instance)
        except JobError as e:
            logger.error("job_failed", job=job_name, root=info.root.name, error=str(e))
            summary = "\n\n".join([*summaries, render_output(job_name, e.output), f"{job_name} failed: {e}"])
            await self._update(info, CheckRunState.FAILURE, summary)
            raise

    async def _checkout(self, info: DeploymentInfo, repo_path: str) -> RootInstance:
        os.makedirs(self.workdir_root, exist_ok=True)
        command = (
            f"git clone --quiet {shlex.quote(info.repo.url)} {shlex.quote(repo_path)}"
            f" && git -C {shlex.quote(repo_path)} checkout --quiet {shlex.quote(info.revision)}"
        )
        try:
            await self.activities.execute_command(command, self.workdir_root, {})
        except StepError as e:
            await self._update(info, CheckRunState.FAILURE, f"checking out revision failed: {e}")
            raise
        return RootInstance(root=info.root, repo=info.repo, commit=info.commit, repo_path=repo_path)

    async def _update(self, info: DeploymentInfo, state: CheckRunState, summary: str) -> None:
        request = CheckRunRequest(
            title=deploy_check_run_title(info.root.name),
            sha=info.revision,
            repo=info.repo,
            state=state,
            summary=summary,
        )
        try:
            await self.check_runs.create_or_update(str(info.id), request)
        except Exception as e:
            logger.warning("check_run_update_failed", state=state.value, error=str(e))
