"""
External task executor.

Invokes the external agent-orchestration tool as a subprocess with a bounded
run time. When the tool is not available the executor works in standalone
mode: every task resolves to an inert result and no process is started.
"""

import asyncio
import contextlib
import json
import os
import signal
import time
from typing import Any, Dict, List

from gatekeeper.orchestration.domain.models import ExecutorConnection
from gatekeeper.shared.domain.exceptions import ExecutorError, ExecutorTimeoutError
from gatekeeper.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)

STANDALONE_MESSAGE = "Task logged (executor not connected)"


def parse_output(output: str) -> Any:
    """Parse tool output as JSON, falling back to the stripped text."""
    try:
        return json.loads(output)
    except (json.JSONDecodeError, ValueError):
        return output.strip()


class ExternalTaskExecutor:
    """
    Subprocess wrapper around the external orchestration tool.

    Every invocation runs ``<command> <package> <args...>``.
    """

    def __init__(self, command: str = "npx", package: str = "claude-flow@alpha", timeout: float = 30.0):
        self.command = command
        self.package = package
        self.timeout = timeout
        self.connected = False
        self.version: str | None = None

    async def connect_async(self) -> ExecutorConnection:
        """
        Check the tool with ``--version``.

        Failure is not an error: the executor stays in standalone mode.
        """
        try:
            output = await self._run_async(["--version"])
        except ExecutorError as e:
            self.connected = False
            logger.info("executor_unavailable", command=self.command, package=self.package, error=str(e))
            return ExecutorConnection(connected=False, error=str(e))

        self.connected = True
        self.version = output.strip()
        logger.info("executor_connected", version=self.version)
        return ExecutorConnection(connected=True, version=self.version)

    async def execute_async(self, task: str, strategy: str, priority: str, max_agents: int) -> Any:
        """
        Run one task through the tool.

        Returns:
            Parsed tool output, or a standalone result when not connected

        Raises:
            ExecutorError: the tool exited with a non-zero status
            ExecutorTimeoutError: the tool exceeded the configured timeout
        """
        if not self.connected:
            return {
                "success": True,
                "task": task,
                "strategy": strategy,
                "mode": "standalone",
                "message": STANDALONE_MESSAGE,
            }

        output = await self._run_async(
            [
                "mcp",
                "task_orchestrate",
                "--task",
                task,
                "--strategy",
                strategy,
                "--priority",
                priority,
                "--max-agents",
                str(max_agents),
            ]
        )
        return parse_output(output)

    async def _run_async(self, args: List[str]) -> str:
        cmd_args = [self.command, self.package, *args]
        start_time = time.perf_counter()
        logger.debug("executing_command", command=cmd_args[:3], timeout=self.timeout)

        try:
            process = await asyncio.create_subprocess_exec(
                *cmd_args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                preexec_fn=os.setsid,  # own process group so children die with it
            )
        except OSError as e:
            raise ExecutorError(f"Failed to start {self.command}: {e}", context={"command": self.command}) from e

        try:
            stdout_data, stderr_data = await asyncio.wait_for(process.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning("command_timeout", command=cmd_args[:3], timeout=self.timeout)
            with contextlib.suppress(ProcessLookupError):
                os.killpg(os.getpgid(process.pid), signal.SIGTERM)
            raise ExecutorTimeoutError(
                f"Command timed out after {self.timeout}s",
                context={"timeout": self.timeout},
            ) from None

        stdout_str = stdout_data.decode("utf-8", errors="replace")
        stderr_str = stderr_data.decode("utf-8", errors="replace")

        if process.returncode != 0:
            logger.warning(
                "command_failed",
                command=cmd_args[:3],
                exit_code=process.returncode,
                stderr_snippet=stderr_str[:200],
            )
            raise ExecutorError(
                stderr_str.strip() or f"Command failed with code {process.returncode}",
                context={"exit_code": process.returncode},
            )

        logger.debug("command_success", command=cmd_args[:3], duration=time.perf_counter() - start_time)
        return stdout_str

    def get_status(self) -> Dict[str, Any]:
        return {
            "connected": self.connected,
            "version": self.version,
            "mode": "connected" if self.connected else "standalone",
        }
