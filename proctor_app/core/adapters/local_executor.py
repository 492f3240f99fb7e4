"""Runs Python answers in a child interpreter."""

from __future__ import annotations

import asyncio
import logging
import sys
import time

from proctor_app.constants.session_constants import DEFAULT_EXECUTION_TIMEOUT_SECONDS
from proctor_app.core.models import ExecutionResult, ExecutionStatus

logger = logging.getLogger(__name__)

_MAX_OUTPUT_CHARS = 10_000


class LocalPythonExecutor:
    """Executes code with ``python -I -c`` and captures stdout/stderr.

    This is not a sandbox. It isolates the child from user site-packages and
    environment variables only, and is meant for local trials of the server.
    """

    def __init__(self, timeout_seconds: float = DEFAULT_EXECUTION_TIMEOUT_SECONDS) -> None:
        self._timeout = timeout_seconds

    async def execute(self, code: str, language: str) -> ExecutionResult:
        if language.lower() != "python":
            return ExecutionResult(
                status=ExecutionStatus.ERROR,
                error=f"Language '{language}' cannot be executed locally.",
            )

        started = time.perf_counter()
        try:
            process = await asyncio.create_subprocess_exec(
                sys.executable,
                "-I",
                "-c",
                code,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            logger.error("Could not start the Python interpreter: %s", exc)
            return ExecutionResult(status=ExecutionStatus.ERROR, error=str(exc))

        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=self._timeout)
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            return ExecutionResult(
                status=ExecutionStatus.TIMEOUT,
                error=f"Execution exceeded {self._timeout:g} seconds.",
                execution_time_ms=_elapsed_ms(started),
            )

        output = stdout.decode("utf-8", errors="replace")[:_MAX_OUTPUT_CHARS]
        error_text = stderr.decode("utf-8", errors="replace")[:_MAX_OUTPUT_CHARS]
        status = ExecutionStatus.SUCCESS if process.returncode == 0 else ExecutionStatus.ERROR
        return ExecutionResult(
            status=status,
            output=output,
            error=error_text or None,
            execution_time_ms=_elapsed_ms(started),
        )


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)
