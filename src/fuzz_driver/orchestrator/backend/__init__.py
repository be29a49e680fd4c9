"""Process runner implementations."""

from fuzz_driver.orchestrator.backend.base import ProcessResult, ProcessRunner, ProcessRunRequest
from fuzz_driver.orchestrator.backend.subprocess_backend import (
    ProcessRunError,
    SubprocessRunner,
    ToolNotFoundError,
    quote_argument,
)

__all__ = [
    "ProcessResult",
    "ProcessRunError",
    "ProcessRunRequest",
    "ProcessRunner",
    "SubprocessRunner",
    "ToolNotFoundError",
    "quote_argument",
]
