"""Invocation of the compiler, the fuzzing engine and the results analyzer."""

from __future__ import annotations

import logging
import shutil
from dataclasses import replace
from pathlib import Path

from fuzz_driver import __version__
from fuzz_driver.config import ToolSettings
from fuzz_driver.orchestrator.backend import (
    ProcessRunner,
    ProcessRunRequest,
    ToolNotFoundError,
    quote_argument,
)
from fuzz_driver.orchestrator.contracts import (
    COMPILER_CONFIG_FILE_NAME,
    DEFAULT_DICTIONARY_FILE_NAME,
    write_compile_config,
    write_default_dictionary,
)
from fuzz_driver.orchestrator.models import CompileConfig, EngineConfig

logger = logging.getLogger(__name__)

DEFAULT_FUZZING_DURATION_HOURS = 1.0
RESPONSE_BUCKETS_DIR_NAME = "ResponseBuckets"
MAX_INSTANCES_PER_BUCKET = 10
SMOKE_TEST_FUZZING_MODE = "directed-smoke-test"
FUZZ_FUZZING_MODE = "bfs-cheap"
_INTERNAL_ENGINE_FLAGS = (
    "--include_user_agent",
    "--no_tokens_in_logs t",
    "--garbage_collection_interval 30",
)


def engine_common_flags(config: EngineConfig, max_duration_hours: float | None) -> list[str]:
    """Engine flags shared by every fuzzing mode."""

    q = quote_argument
    flags = [
        f"--restler_grammar {q(config.grammar_file_path or '')}",
        f"--custom_mutations {q(config.dictionary_file_path or '')}",
        f"--set_version {__version__}",
    ]
    if config.token_refresh is not None:
        if config.token_refresh.interval.strip():
            flags.append(f"--token_refresh_interval {config.token_refresh.interval}")
        if config.token_refresh.command.strip():
            flags.append(f"--token_refresh_cmd {q(config.token_refresh.command)}")
    if config.producer_timing_delay > 0:
        flags.append(f"--producer_timing_delay {config.producer_timing_delay}")
    if not config.use_ssl:
        flags.append("--no_ssl")
    if config.host is not None:
        flags.append(f"--host {q(config.host)}")
    if config.path_regex is not None:
        flags.append(f"--path_regex {q(config.path_regex)}")
    if config.settings_file_path:
        flags.append(f"--settings {q(config.settings_file_path)}")
    for action, checkers in config.checker_options:
        names = " ".join(q(name) for name in checkers.split())
        flags.append(f"{action} {names}".strip())
    if max_duration_hours is not None:
        flags.append(f"--time_budget {max_duration_hours:f}")
    if config.target_ip is not None:
        flags.append(f"--target_ip {q(config.target_ip)}")
    if config.target_port is not None:
        flags.append(f"--target_port {q(config.target_port)}")
    flags.extend(_INTERNAL_ENGINE_FLAGS)
    return flags


def smoke_test_flags(config: EngineConfig) -> list[str]:
    max_duration_hours = config.max_duration_hours or None
    return [
        *engine_common_flags(config, max_duration_hours),
        f"--fuzzing_mode {SMOKE_TEST_FUZZING_MODE}",
    ]


def fuzz_flags(config: EngineConfig) -> list[str]:
    max_duration_hours = config.max_duration_hours or DEFAULT_FUZZING_DURATION_HOURS
    return [
        *engine_common_flags(config, max_duration_hours),
        f"--fuzzing_mode {FUZZ_FUZZING_MODE}",
    ]


def replay_flags(config: EngineConfig) -> list[str]:
    if config.replay_log_file_path is None:
        raise ValueError("Replay log must be specified in 'replay' mode.")
    return [
        *engine_common_flags(config, None),
        f"--replay_log {quote_argument(config.replay_log_file_path)}",
    ]


class ToolChain:
    """Runs each external tool through a process runner."""

    def __init__(self, *, tools: ToolSettings, runner: ProcessRunner) -> None:
        self.tools = tools
        self.runner = runner

    def compile(self, working_directory: Path, config: CompileConfig) -> int:
        """Write a self-contained compiler config and run the compiler on it."""

        if not self.tools.compiler_path.is_file():
            raise ToolNotFoundError(
                "Could not find path to compiler.  Please re-install or contact support.",
            )

        dictionary_path = config.custom_dictionary_file_path
        if dictionary_path is None:
            dictionary_path = str(
                write_default_dictionary(working_directory / DEFAULT_DICTIONARY_FILE_NAME),
            )
        output_dir = Path(config.grammar_output_directory_path or working_directory)
        output_dir.mkdir(parents=True, exist_ok=True)

        compiler_config_path = working_directory / COMPILER_CONFIG_FILE_NAME
        write_compile_config(
            compiler_config_path,
            replace(
                config,
                grammar_output_directory_path=str(output_dir),
                custom_dictionary_file_path=dictionary_path,
            ),
        )

        result = self.runner.run(
            ProcessRunRequest(
                executable=self.tools.dotnet_executable,
                arguments=(
                    f"{quote_argument(str(self.tools.compiler_path))} "
                    f"{quote_argument(str(compiler_config_path))}"
                ),
                working_directory=working_directory,
                output_directory=output_dir,
            ),
        )
        if result.exit_code != 0:
            logger.error(
                "Compiler failed. See logs in %s directory for more information.",
                output_dir,
            )
        return result.exit_code

    def run_engine(self, working_directory: Path, flags: list[str]) -> int:
        engine_arguments = " ".join(flag for flag in flags if flag)
        if self.tools.engine_executable_path.is_file():
            executable = str(self.tools.engine_executable_path)
            arguments = engine_arguments
        elif self.tools.engine_script_path.is_file():
            executable = self.tools.python_executable
            arguments = (
                f"-B {quote_argument(str(self.tools.engine_script_path))} {engine_arguments}"
            )
        else:
            raise ToolNotFoundError(
                "Could not find path to the fuzzing engine.  Please re-install or contact support.",
            )

        result = self.runner.run(
            ProcessRunRequest(
                executable=executable,
                arguments=arguments,
                working_directory=working_directory,
                output_prefix="Engine",
            ),
        )
        if result.exit_code != 0:
            logger.error(
                "Fuzzing engine failed. See logs in %s directory for more information.",
                working_directory,
            )
        return result.exit_code

    def run_results_analyzer(self, working_directory: Path, dictionary_file_path: str) -> int:
        """Bucket failures found in every log under ``working_directory``."""

        if not self.tools.results_analyzer_path.is_file():
            raise ToolNotFoundError(
                "Could not find path to the results analyzer.  "
                "Please re-install or contact support.",
            )

        output_dir = working_directory / RESPONSE_BUCKETS_DIR_NAME
        if output_dir.exists():
            shutil.rmtree(output_dir)
        output_dir.mkdir(parents=True)

        q = quote_argument
        arguments = " ".join(
            [
                q(str(self.tools.results_analyzer_path)),
                f"analyze {q(str(working_directory))}",
                f"--output_dir {q(str(output_dir))}",
                f"--dictionary_file {q(dictionary_file_path)}",
                f"--max_instances_per_bucket {MAX_INSTANCES_PER_BUCKET}",
            ],
        )
        result = self.runner.run(
            ProcessRunRequest(
                executable=self.tools.dotnet_executable,
                arguments=arguments,
                working_directory=working_directory,
                output_prefix="ResultsAnalyzer",
            ),
        )
        if result.exit_code != 0:
            logger.error("Results analyzer for logs in %s failed.", working_directory)
        return result.exit_code

    def run_smoke_test(self, working_directory: Path, config: EngineConfig) -> int:
        return self.run_engine(working_directory, smoke_test_flags(config))

    def fuzz(self, working_directory: Path, config: EngineConfig) -> int:
        return self.run_engine(working_directory, fuzz_flags(config))

    def replay(self, working_directory: Path, config: EngineConfig) -> int:
        return self.run_engine(working_directory, replay_flags(config))
