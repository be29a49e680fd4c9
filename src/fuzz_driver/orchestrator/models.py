"""Domain models describing one driver invocation."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from fuzz_driver.orchestrator.summary import TestingSummary


class Task(str, Enum):
    """Top-level operation requested by the user."""

    COMPILE = "Compile"
    TEST = "Test"
    FUZZ_LEAN = "FuzzLean"
    FUZZ = "Fuzz"
    REPLAY = "Replay"


ENGINE_TASKS = frozenset({Task.TEST, Task.FUZZ_LEAN, Task.FUZZ, Task.REPLAY})


@dataclass(frozen=True, slots=True)
class CompileConfig:
    """Compiler settings; paths are absolute once parsing is complete."""

    swagger_spec_file_paths: tuple[str, ...] | None = None
    grammar_input_file_path: str | None = None
    custom_dictionary_file_path: str | None = None
    annotation_file_path: str | None = None
    example_config_file_path: str | None = None
    engine_settings_file_path: str | None = None
    grammar_output_directory_path: str | None = None
    include_optional_parameters: bool = True
    use_query_examples: bool | None = True
    use_body_examples: bool | None = True
    data_fuzzing: bool = False
    extra: dict[str, Any] = field(default_factory=dict)


DEFAULT_COMPILE_CONFIG = CompileConfig()


@dataclass(frozen=True, slots=True)
class TokenRefreshOptions:
    """How the engine refreshes its authentication token."""

    interval: str = ""
    command: str = ""


@dataclass(frozen=True, slots=True)
class EngineConfig:
    """Engine settings shared by test, fuzz-lean, fuzz and replay."""

    grammar_file_path: str | None = None
    dictionary_file_path: str | None = None
    target_ip: str | None = None
    target_port: str | None = None
    host: str | None = None
    use_ssl: bool = True
    token_refresh: TokenRefreshOptions | None = None
    producer_timing_delay: int = 0
    path_regex: str | None = None
    settings_file_path: str | None = None
    max_duration_hours: float = 0.0
    replay_log_file_path: str | None = None
    checker_options: tuple[tuple[str, str], ...] = ()
    run_results_analyzer: bool = True


DEFAULT_ENGINE_CONFIG = EngineConfig()


@dataclass(frozen=True, slots=True)
class CompilerParameters:
    config: CompileConfig


@dataclass(frozen=True, slots=True)
class EngineParameters:
    config: EngineConfig


@dataclass(frozen=True, slots=True)
class UndefinedParameters:
    """Placeholder before a task token has been parsed."""


TaskParameters = CompilerParameters | EngineParameters | UndefinedParameters


@dataclass(frozen=True, slots=True)
class DriverArgs:
    """Fully parsed command line for one invocation."""

    output_dir_path: Path
    working_directory_path: Path
    task: Task | None = None
    task_parameters: TaskParameters = UndefinedParameters()
    logs_upload_root_dir_path: Path | None = None


@dataclass(slots=True)
class TaskResult:
    """Uniform outcome of one dispatched task."""

    task_result: int
    analyzer_result: int | None = None
    testing_summary: TestingSummary | None = None

    @property
    def succeeded(self) -> bool:
        return self.task_result == 0


class DriverInvariantError(RuntimeError):
    """Internal inconsistency that argument validation should have prevented."""
