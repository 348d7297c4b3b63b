import asyncio
import os

from tfdeploy.errors import StepError
from tfdeploy.logging import get_logger

logger = get_logger(__name__)

COMMAND_PREVIEW_LENGTH = 100


class CommandExecutor:
    """Runs shell commands for job steps."""

    def __init__(self, timeout: float = 3600.0, shell: str = "sh"):
        self.timeout = timeout
        self.shell = shell

    async def run(self, command: str, cwd: str, env: dict[str, str]) -> str:
        """Run ``command`` in ``cwd`` and return combined stdout and stderr.

        The process inherits the worker's environment overlaid with ``env``.

        Raises:
            StepError: on a non-zero exit or timeout. The message carries the output.
        """
        logger.info(
            "executing_command",
            cwd=cwd,
            command_preview=command[:COMMAND_PREVIEW_LENGTH],
        )

        proc = await asyncio.create_subprocess_exec(
            self.shell,
            "-c",
            command,
            cwd=cwd,
            env={**os.environ, **env},
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
        )

        try:
            stdout, _ = await asyncio.wait_for(proc.communicate(), timeout=self.timeout)
        except TimeoutError:
            proc.kill()
            await proc.wait()
            logger.error("command_timeout", cwd=cwd, timeout=self.timeout)
            raise StepError(f"command timed out after {self.timeout}s") from None

        output = stdout.decode() if stdout else ""
        if proc.returncode != 0:
            logger.warning("command_failed", cwd=cwd, exit_code=proc.returncode)
            raise StepError(f"running {command!r} in {cwd!r}: exit status {proc.returncode}: {output}")

        logger.info("command_complete", cwd=cwd, exit_code=proc.returncode)
        return output
