"""Subprocess-based process runner."""

from __future__ import annotations

import logging
import os
import shlex
import subprocess

from fuzz_driver.orchestrator.backend.base import ProcessResult, ProcessRunRequest

logger = logging.getLogger(__name__)


class ToolNotFoundError(RuntimeError):
    """A required external tool is not installed."""


class ProcessRunError(RuntimeError):
    """The operating system failed to start a process."""


class SubprocessRunner:
    """Launch a tool without timeout and buffer both output streams."""

    def run(self, request: ProcessRunRequest) -> ProcessResult:
        run_args = build_run_args(request.executable, request.arguments)
        logger.debug(
            "Starting %s %s in %s",
            request.executable,
            request.arguments,
            request.working_directory,
        )
        try:
            completed = subprocess.run(  # noqa: S603
                run_args,
                cwd=request.working_directory,
                capture_output=True,
                text=True,
                encoding="utf-8",
                errors="replace",
                check=False,
            )
        except FileNotFoundError as error:
            raise ToolNotFoundError(f"Executable not found: {request.executable}") from error
        except OSError as error:
            raise ProcessRunError(f"Failed to start {request.executable}: {error}") from error

        result = ProcessResult(
            exit_code=completed.returncode,
            stdout=completed.stdout or "",
            stderr=completed.stderr or "",
        )
        persist_output(request, result)
        if result.exit_code != 0:
            logger.error(
                "%s exited with code %d. Output saved to %s",
                request.executable,
                result.exit_code,
                request.stdout_path.parent,
            )
        return result


def build_run_args(
    executable: str,
    arguments: str,
    *,
    os_name: str | None = None,
) -> str | list[str]:
    """Combine executable and argument string into a launchable command."""

    if (os_name or os.name) == "nt":
        return f"{subprocess.list2cmdline([executable])} {arguments}".strip()
    return [executable, *shlex.split(arguments)]


def quote_argument(value: str, *, os_name: str | None = None) -> str:
    """Quote one value for inclusion in an argument string."""

    if (os_name or os.name) == "nt":
        return subprocess.list2cmdline([value])
    return shlex.quote(value)


def persist_output(request: ProcessRunRequest, result: ProcessResult) -> None:
    request.stdout_path.parent.mkdir(parents=True, exist_ok=True)
    request.stdout_path.write_text(result.stdout, "utf-8")
    request.stderr_path.write_text(result.stderr, "utf-8")
