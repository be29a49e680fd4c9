"""Process runner interface used for every external tool invocation."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Protocol


@dataclass(slots=True)
class ProcessRunRequest:
    """One external tool launch."""

    executable: str
    arguments: str
    working_directory: Path
    output_prefix: str = ""
    output_directory: Path | None = None

    @property
    def stdout_path(self) -> Path:
        return (self.output_directory or self.working_directory) / (
            f"{self.output_prefix}StdOut.txt"
        )

    @property
    def stderr_path(self) -> Path:
        return (self.output_directory or self.working_directory) / (
            f"{self.output_prefix}StdErr.txt"
        )


@dataclass(slots=True)
class ProcessResult:
    """Exit status and captured streams of a finished process."""

    exit_code: int
    stdout: str
    stderr: str


class ProcessRunner(Protocol):
    """Protocol implemented by process runners."""

    def run(self, request: ProcessRunRequest) -> ProcessResult:
        """Run the process to completion and persist its captured output."""
