"""Deploy worker entrypoint: consumes root signals until stopped."""

import asyncio
import signal
import sys

from tfdeploy.activities import Activities, RetryPolicy
from tfdeploy.clients.github import GitHubAppClient
from tfdeploy.config import Settings, get_settings
from tfdeploy.deploy.audit import AuditPublisher
from tfdeploy.deploy.store import DeploymentStore
from tfdeploy.jobs.executor import CommandExecutor
from tfdeploy.jobs.runner import JobRunner
from tfdeploy.jobs.steps import EnvStepRunner, RunStepRunner, StepRunners
from tfdeploy.logging import get_logger, setup_logging
from tfdeploy.policy import load_policy
from tfdeploy.redis import RedisStreamClient
from tfdeploy.workflow.root import RootWorkflow, WorkflowDependencies
from tfdeploy.workflow.router import SignalRouter
from tfdeploy.workflow.state import RedisIdGenerator, WorkflowStateStore

logger = get_logger(__name__)


def run_main():
    """Entry point for the console script."""
    asyncio.run(main())


def build_router(settings: Settings, redis: RedisStreamClient) -> SignalRouter:
    retry_policy = RetryPolicy.from_settings(settings)
    activities = Activities(
        github=GitHubAppClient(
            app_id=settings.github_app_id,
            private_key_path=settings.github_app_private_key_path,
            api_url=settings.github_api_url,
        ),
        store=DeploymentStore(redis.redis),
        audit=AuditPublisher(redis, settings.audit_stream),
        executor=CommandExecutor(timeout=settings.command_timeout_seconds),
        policy=retry_policy,
    )
    run_runner = RunStepRunner(activities, settings.default_tf_version)
    state_store = WorkflowStateStore(redis.redis)
    deps = WorkflowDependencies(
        activities=activities,
        policy=load_policy(settings.policy_file),
        state_store=state_store,
        id_generator=RedisIdGenerator(redis.redis),
        job_runner=JobRunner(StepRunners(run_runner, EnvStepRunner(run_runner))),
        workdir_root=settings.workdir_root,
        check_run_policy=retry_policy.with_attempts(settings.check_run_max_attempts),
        revision_receive_timeout=settings.revision_receive_timeout_seconds,
    )
    return SignalRouter(
        redis=redis,
        stream=settings.signal_stream,
        group=settings.consumer_group,
        consumer=settings.consumer_name,
        workflow_factory=lambda key: RootWorkflow(key, deps),
        state_store=state_store,
    )


async def main():
    try:
        settings = get_settings()
    except Exception as e:
        setup_logging()
        logger.fatal("configuration_error", error=str(e))
        sys.exit(1)

    setup_logging(settings.service_name, settings.log_format, settings.log_level)

    redis = RedisStreamClient(settings.redis_url)
    await redis.connect()

    try:
        router = build_router(settings, redis)
    except Exception as e:
        logger.fatal("startup_failed", error=str(e))
        await redis.close()
        sys.exit(1)

    task = asyncio.create_task(router.run())

    def handle_signal():
        logger.info("signal_received")
        router.stop()
        task.cancel()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, handle_signal)

    try:
        await task
    except asyncio.CancelledError:
        pass
    except Exception as e:
        logger.exception("main_crashed", error=str(e))
        sys.exit(1)
    finally:
        await redis.close()


if __name__ == "__main__":
    run_main()
