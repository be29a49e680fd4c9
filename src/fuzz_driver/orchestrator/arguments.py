"""Mode-aware command-line parser producing validated driver arguments."""

from __future__ import annotations

import logging
import math
import os
from collections.abc import Callable, Sequence
from dataclasses import replace
from pathlib import Path

from fuzz_driver import __version__
from fuzz_driver.orchestrator.contracts import (
    CompileConfigError,
    convert_relative_to_abs_paths,
    read_compile_config,
)
from fuzz_driver.orchestrator.models import (
    DEFAULT_COMPILE_CONFIG,
    DEFAULT_ENGINE_CONFIG,
    CompilerParameters,
    DriverArgs,
    DriverInvariantError,
    EngineConfig,
    EngineParameters,
    Task,
    TokenRefreshOptions,
)

logger = logging.getLogger(__name__)

SUPPORTED_CHECKERS: tuple[str, ...] = (
    "leakagerule",
    "resourcehierarchy",
    "useafterfree",
    "namespacerule",
    "invaliddynamicobject",
    "payloadbody",
    "examples",
    "*",
)
CHECKER_ACTIONS = frozenset({"--enable_checkers", "--disable_checkers"})
FUZZ_LEAN_CHECKER_OPTIONS: tuple[tuple[str, str], ...] = (
    ("--enable_checkers", "*"),
    ("--disable_checkers", "namespacerule"),
)

_TASK_TOKENS: dict[str, Task] = {
    "compile": Task.COMPILE,
    "test": Task.TEST,
    "fuzz-lean": Task.FUZZ_LEAN,
    "fuzz": Task.FUZZ,
    "replay": Task.REPLAY,
}

USAGE = """\
Usage:

  fuzz-driver --version
          [--disable_log_upload] [--logsUploadRootDirPath <log upload directory>]
          [ compile <compile options> |
            test <test options> |
            fuzz-lean <test options> |
            fuzz <fuzz options> |
            replay <replay options> ]

    global options:
        --disable_log_upload
            Disable uploading full logs to the configured log upload directory.
        --logsUploadRootDirPath <path where to upload logs>
            Upload full logs to this upload directory.

    compile options:
        <compiler config file>
        OR
        --api_spec <path to Swagger specification>
            A default compiler config file will be auto-generated.
            You must change it later to fit your needs.

    test options:
        --grammar_file <grammar file>
        --dictionary_file <dictionary file>
        --target_ip <ip>
            If specified, sets the IP address to this specific value instead of using the hostname.
        --target_port <port>
            If specified, overrides the default port, which is 443 with SSL, 80 with no SSL.
        --token_refresh_interval <interval with which to refresh the token>
        --token_refresh_command <full command line to refresh token.>
            The command line must be enclosed in double quotes. Paths must be absolute.
        --producer_timing_delay <delay in seconds after invoking an API that creates a new resource>
        --path_regex <path regex>
            <path regex> is a regular expression used to filter which requests are fuzzed.
            Example: (\\w*)/virtualNetworks/(\\w*)
        --no_ssl
            When connecting to the service, do not use SSL.  The default is to connect with SSL.
        --host <Host string>
            If specified, this string will set or override the Host in each request.
        --settings <engine settings file>
        --enable_checkers <list of checkers>
        --disable_checkers <list of checkers>
            <list of checkers> - A comma-separated list of checker names without spaces.
            Supported checkers: leakagerule, resourcehierarchy, useafterfree,
                                namespacerule, invaliddynamicobject, payloadbody, examples.
            Note: some checkers are enabled by default in fuzz-lean and fuzz mode.
        --no_results_analyzer
            If specified, do not run results analyzer on the network logs.
            Results analyzer may be run separately.

    fuzz-lean options:
        <The same options as 'test'>
            This task runs test mode with a subset of checkers, which performs some limited fuzzing.

    fuzz options:
        <The same options as 'test'>
        --time_budget <maximum duration in hours>

    replay options:
        <Required options from 'test' mode as above:
            --token_refresh_command. >
        --replay_log <path to the bug bucket repro file>.
"""


class ArgumentError(ValueError):
    """Invalid user-supplied command line."""


class VersionRequested(Exception):  # noqa: N818
    """Raised when ``--version`` is parsed; the caller prints and exits 0."""

    def __init__(self, version: str) -> None:
        super().__init__(version)
        self.version = version


def initial_driver_args(
    *,
    output_dir_path: Path,
    working_directory_path: Path,
    logs_upload_root_dir_path: Path | None,
) -> DriverArgs:
    return DriverArgs(
        output_dir_path=output_dir_path,
        working_directory_path=working_directory_path,
        logs_upload_root_dir_path=logs_upload_root_dir_path,
    )


def parse_args(tokens: Sequence[str], args: DriverArgs) -> DriverArgs:
    """Parse global tokens and exactly one task with its options."""

    if not tokens:
        raise ArgumentError("No arguments were specified.")

    remaining = list(tokens)
    while remaining:
        token, *rest = remaining
        if token == "--version":
            raise VersionRequested(__version__)
        if token == "--disable_log_upload":
            logger.warning(
                "Log upload will be disabled.  "
                "Logs will only be written locally in the working directory.",
            )
            args = replace(args, logs_upload_root_dir_path=None)
            remaining = rest
            continue
        if token == "--logsUploadRootDirPath":
            value, remaining = _take_value(token, rest)
            if not Path(value).is_dir():
                raise ArgumentError(f"Directory {value} does not exist.")
            args = replace(args, logs_upload_root_dir_path=Path(os.path.abspath(value)))
            continue

        task = _TASK_TOKENS.get(token)
        if task is None:
            raise ArgumentError(f"Invalid argument: {token}")
        if args.task is not None:
            raise ArgumentError(f"Only one task may be specified, got {token!r} after compile.")
        if task == Task.COMPILE:
            args, remaining = _parse_compile(args, rest)
            continue
        return _parse_engine_task(args, task, rest)

    if args.task is None:
        raise ArgumentError("A task must be specified.")
    if not isinstance(args.task_parameters, CompilerParameters):
        raise DriverInvariantError(f"Compile task parsed without compiler parameters: {args!r}")
    return args


def _parse_compile(args: DriverArgs, tokens: list[str]) -> tuple[DriverArgs, list[str]]:
    if not tokens:
        raise ArgumentError("compile requires a compiler config file or --api_spec <path>.")

    head, *rest = tokens
    if head == "--api_spec":
        spec_path, rest = _take_value(head, rest)
        if not Path(spec_path).is_file():
            raise ArgumentError(f"API specification file {spec_path} does not exist.")
        config = replace(
            DEFAULT_COMPILE_CONFIG,
            swagger_spec_file_paths=(os.path.abspath(spec_path),),
            include_optional_parameters=True,
            # Data fuzzing is on by default in the engine for fuzzing.
            data_fuzzing=True,
        )
        return (
            replace(args, task=Task.COMPILE, task_parameters=CompilerParameters(config)),
            rest,
        )

    config_path = Path(head)
    if not config_path.is_file():
        raise ArgumentError(f"File {head} does not exist.")
    try:
        loaded = read_compile_config(config_path)
    except CompileConfigError as error:
        first_line = str(error).split("\n", 1)[0]
        raise ArgumentError(
            f"Invalid format for compiler config file {head}. "
            "Please refer to the documentation for the compiler config file format. "
            f"Deserialization error: {first_line}",
        ) from error

    config = replace(
        convert_relative_to_abs_paths(config_path, loaded),
        use_query_examples=DEFAULT_COMPILE_CONFIG.use_query_examples,
        use_body_examples=DEFAULT_COMPILE_CONFIG.use_body_examples,
        include_optional_parameters=True,
    )
    return replace(args, task=Task.COMPILE, task_parameters=CompilerParameters(config)), rest


def _parse_engine_task(args: DriverArgs, task: Task, tokens: list[str]) -> DriverArgs:
    # fuzz-lean is 'test' with all checkers except the namespace checker turned on.
    grammar_task = Task.TEST if task == Task.FUZZ_LEAN else task
    config = parse_engine_args(grammar_task, DEFAULT_ENGINE_CONFIG, tokens)
    if task == Task.FUZZ_LEAN:
        config = replace(config, checker_options=FUZZ_LEAN_CHECKER_OPTIONS)
    return replace(args, task=task, task_parameters=EngineParameters(config))


def parse_engine_args(task: Task, config: EngineConfig, tokens: Sequence[str]) -> EngineConfig:
    """Fold engine option tokens into ``config`` for the given task grammar."""

    if task == Task.COMPILE:
        raise DriverInvariantError("Engine arguments cannot be parsed for the compile task.")

    value_flags = _value_flags_for(task)
    remaining = list(tokens)
    while remaining:
        token, *rest = remaining
        if token in _SWITCHES:
            config = _SWITCHES[token](config)
            remaining = rest
            continue
        if token in CHECKER_ACTIONS:
            value, remaining = _take_value(token, rest)
            config = _add_checker_option(config, token, value)
            continue
        handler = value_flags.get(token)
        if handler is None:
            raise ArgumentError(f"Invalid argument: {token}")
        value, remaining = _take_value(token, rest)
        config = handler(config, value)

    _check_engine_postconditions(task, config)
    return config


def _check_engine_postconditions(task: Task, config: EngineConfig) -> None:
    if task == Task.REPLAY:
        if config.replay_log_file_path is None:
            raise ArgumentError("Replay log file path must be specified.")
        return
    if config.grammar_file_path == DEFAULT_ENGINE_CONFIG.grammar_file_path:
        raise ArgumentError("Grammar file path must be specified.")
    if config.dictionary_file_path == DEFAULT_ENGINE_CONFIG.dictionary_file_path:
        raise ArgumentError("Fuzzing dictionary file path must be specified.")


def _take_value(flag: str, tokens: list[str]) -> tuple[str, list[str]]:
    if not tokens:
        raise ArgumentError(f"Missing value for {flag}.")
    value, *rest = tokens
    return value, rest


def _existing_file(value: str, description: str) -> str:
    if not Path(value).is_file():
        raise ArgumentError(f"The {description} path {value} does not exist.")
    return os.path.abspath(value)


def _with_grammar(config: EngineConfig, value: str) -> EngineConfig:
    return replace(config, grammar_file_path=_existing_file(value, "grammar file"))


def _with_dictionary(config: EngineConfig, value: str) -> EngineConfig:
    return replace(config, dictionary_file_path=_existing_file(value, "dictionary file"))


def _with_settings(config: EngineConfig, value: str) -> EngineConfig:
    return replace(config, settings_file_path=_existing_file(value, "settings file"))


def _with_replay_log(config: EngineConfig, value: str) -> EngineConfig:
    return replace(config, replay_log_file_path=_existing_file(value, "replay log file"))


def _with_token_refresh_command(config: EngineConfig, value: str) -> EngineConfig:
    current = config.token_refresh or TokenRefreshOptions()
    return replace(config, token_refresh=replace(current, command=value))


def _with_token_refresh_interval(config: EngineConfig, value: str) -> EngineConfig:
    current = config.token_refresh or TokenRefreshOptions()
    return replace(config, token_refresh=replace(current, interval=value))


def _with_time_budget(config: EngineConfig, value: str) -> EngineConfig:
    try:
        hours = float(value)
    except ValueError as error:
        raise ArgumentError(f"Invalid argument for time_budget: {value}") from error
    if not math.isfinite(hours) or hours < 0:
        raise ArgumentError(f"Invalid argument for time_budget: {value}")
    return replace(config, max_duration_hours=hours)


def _with_producer_timing_delay(config: EngineConfig, value: str) -> EngineConfig:
    try:
        delay = int(value)
    except ValueError as error:
        raise ArgumentError(f"Invalid argument for producer_timing_delay: {value}") from error
    return replace(config, producer_timing_delay=delay)


def _add_checker_option(config: EngineConfig, action: str, value: str) -> EngineConfig:
    checkers = [name for name in value.split(",") if name]
    for name in checkers:
        if name not in SUPPORTED_CHECKERS:
            logger.warning(
                "Warning: unknown checker %s specified. "
                "If this is a custom checker, ignore this message.",
                name,
            )
    return replace(
        config,
        checker_options=(*config.checker_options, (action, " ".join(checkers))),
    )


_EngineHandler = Callable[[EngineConfig, str], EngineConfig]

_COMMON_VALUE_FLAGS: dict[str, _EngineHandler] = {
    "--grammar_file": _with_grammar,
    "--dictionary_file": _with_dictionary,
    "--target_ip": lambda config, value: replace(config, target_ip=value),
    "--target_port": lambda config, value: replace(config, target_port=value),
    "--token_refresh_command": _with_token_refresh_command,
    "--token_refresh_interval": _with_token_refresh_interval,
    "--time_budget": _with_time_budget,
    "--producer_timing_delay": _with_producer_timing_delay,
    "--host": lambda config, value: replace(config, host=value),
    "--settings": _with_settings,
    "--path_regex": lambda config, value: replace(config, path_regex=value),
}
_REPLAY_VALUE_FLAGS: dict[str, _EngineHandler] = {
    **_COMMON_VALUE_FLAGS,
    "--replay_log": _with_replay_log,
}
_SWITCHES: dict[str, Callable[[EngineConfig], EngineConfig]] = {
    "--no_ssl": lambda config: replace(config, use_ssl=False),
    "--no_results_analyzer": lambda config: replace(config, run_results_analyzer=False),
}


def _value_flags_for(task: Task) -> dict[str, _EngineHandler]:
    if task == Task.REPLAY:
        return _REPLAY_VALUE_FLAGS
    return _COMMON_VALUE_FLAGS
