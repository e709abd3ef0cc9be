import asyncio
import os
import subprocess
import time
from typing import Dict, Optional

from opsmate.models.tool import ExecutionResult, ToolContext
from opsmate.utils.logger import setup_logger

logger = setup_logger(__name__)

EXIT_TIMEOUT = 124
EXIT_SPAWN_FAILURE = 127


class ShellExecutor:
    """
    Runs commands through the shell and captures their output.

    Failures to spawn and timeouts come back as ExecutionResult values with
    exit codes 127 and 124, never as exceptions.
    """

    def __init__(self, timeout: float = 60.0, context: Optional[ToolContext] = None):
        self.timeout = timeout
        self.context = context

    def _environment(self) -> Dict[str, str]:
        env = dict(os.environ)
        if self.context and self.context.docker_host:
            env["DOCKER_HOST"] = self.context.docker_host
        return env

    def _cwd(self) -> Optional[str]:
        if self.context and self.context.working_directory not in ("", "."):
            return self.context.working_directory
        return None

    async def execute(self, command: str) -> ExecutionResult:
        if not command.strip():
            return ExecutionResult(EXIT_SPAWN_FAILURE, stderr="No command provided")

        logger.info(f"Executing: {command}")
        start = time.monotonic()
        try:
            process = await asyncio.create_subprocess_shell(
                command,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                cwd=self._cwd(),
                env=self._environment(),
            )
        except OSError as e:
            logger.error(f"Failed to start command: {e}")
            return ExecutionResult(
                EXIT_SPAWN_FAILURE,
                stderr=f"Failed to start command: {e}",
                duration=time.monotonic() - start,
            )

        try:
            stdout, stderr = await asyncio.wait_for(
                process.communicate(), timeout=self.timeout
            )
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            logger.warning(f"Command timed out after {self.timeout}s: {command}")
            return ExecutionResult(
                EXIT_TIMEOUT,
                stderr=f"Command timed out after {self.timeout}s",
                duration=time.monotonic() - start,
            )

        result = ExecutionResult(
            exit_code=process.returncode if process.returncode is not None else -1,
            stdout=stdout.decode(errors="replace").strip(),
            stderr=stderr.decode(errors="replace").strip(),
            duration=time.monotonic() - start,
        )
        logger.info(f"Exit code {result.exit_code} in {result.duration:.2f}s")
        return result
