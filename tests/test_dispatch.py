from __future__ import annotations

import json
import logging
from dataclasses import replace
from pathlib import Path
from typing import TYPE_CHECKING

import allure
import pytest

from fuzz_driver.config import ToolSettings
from fuzz_driver.orchestrator.dispatch import dispatch_task
from fuzz_driver.orchestrator.models import (
    DEFAULT_COMPILE_CONFIG,
    DEFAULT_ENGINE_CONFIG,
    CompilerParameters,
    DriverArgs,
    DriverInvariantError,
    EngineConfig,
    EngineParameters,
    Task,
    UndefinedParameters,
)
from fuzz_driver.orchestrator.tools import ToolChain

if TYPE_CHECKING:
    from tests.conftest import RecordingRunner

pytestmark = [
    allure.epic("Driver"),
    allure.feature("Task Dispatcher"),
]


def _write_summary(workdir: Path) -> None:
    logs_dir = workdir / "RestlerResults" / "run" / "logs"
    logs_dir.mkdir(parents=True)
    (logs_dir / "testing_summary.json").write_text(
        json.dumps(
            {
                "final_spec_coverage": "3 / 4",
                "total_requests_sent": {"main_driver": 11},
                "bug_buckets": {},
            },
        ),
        "utf-8",
    )


def _engine_args(
    tmp_path: Path,
    task: Task,
    grammar_files: tuple[Path, Path],
    **overrides: object,
) -> DriverArgs:
    grammar, dictionary = grammar_files
    config: EngineConfig = replace(
        DEFAULT_ENGINE_CONFIG,
        grammar_file_path=str(grammar),
        dictionary_file_path=str(dictionary),
        **overrides,
    )
    return DriverArgs(
        output_dir_path=tmp_path / "DriverLogs",
        working_directory_path=tmp_path,
        task=task,
        task_parameters=EngineParameters(config),
    )


@pytest.fixture()
def workdir(tmp_path: Path) -> Path:
    path = tmp_path / "Task"
    path.mkdir()
    return path


def test_test_task_runs_engine_then_analyzer_and_reads_summary(
    tmp_path: Path,
    workdir: Path,
    tool_settings: ToolSettings,
    recording_runner: RecordingRunner,
    grammar_files: tuple[Path, Path],
) -> None:
    _write_summary(workdir)

    result = dispatch_task(
        _engine_args(tmp_path, Task.TEST, grammar_files),
        workdir,
        ToolChain(tools=tool_settings, runner=recording_runner),
    )

    assert result.task_result == 0
    assert result.analyzer_result == 0
    assert result.testing_summary is not None
    assert result.testing_summary.coverage == (3, 4)
    assert result.testing_summary.main_driver_requests == 11
    assert [request.output_prefix for request in recording_runner.requests] == [
        "Engine",
        "ResultsAnalyzer",
    ]
    assert "--fuzzing_mode directed-smoke-test" in recording_runner.requests[0].arguments


def test_fuzz_task_uses_fuzzing_mode(
    tmp_path: Path,
    workdir: Path,
    tool_settings: ToolSettings,
    recording_runner: RecordingRunner,
    grammar_files: tuple[Path, Path],
) -> None:
    result = dispatch_task(
        _engine_args(tmp_path, Task.FUZZ, grammar_files),
        workdir,
        ToolChain(tools=tool_settings, runner=recording_runner),
    )

    assert result.task_result == 0
    assert result.testing_summary is not None
    assert not result.testing_summary.found
    engine_arguments = recording_runner.requests[0].arguments
    assert "--fuzzing_mode bfs-cheap" in engine_arguments
    assert "--time_budget 1.000000" in engine_arguments


def test_analyzer_skipped_when_engine_fails(
    tmp_path: Path,
    workdir: Path,
    tool_settings: ToolSettings,
    recording_runner: RecordingRunner,
    grammar_files: tuple[Path, Path],
) -> None:
    _write_summary(workdir)
    recording_runner.exit_codes.append(2)

    result = dispatch_task(
        _engine_args(tmp_path, Task.FUZZ_LEAN, grammar_files),
        workdir,
        ToolChain(tools=tool_settings, runner=recording_runner),
    )

    assert result.task_result == 2
    assert result.analyzer_result is None
    assert result.testing_summary is None
    assert len(recording_runner.requests) == 1


def test_analyzer_skipped_when_opted_out(
    tmp_path: Path,
    workdir: Path,
    tool_settings: ToolSettings,
    recording_runner: RecordingRunner,
    grammar_files: tuple[Path, Path],
) -> None:
    result = dispatch_task(
        _engine_args(tmp_path, Task.TEST, grammar_files, run_results_analyzer=False),
        workdir,
        ToolChain(tools=tool_settings, runner=recording_runner),
    )

    assert result.task_result == 0
    assert result.analyzer_result is None
    assert result.testing_summary is not None
    assert [request.output_prefix for request in recording_runner.requests] == ["Engine"]


def test_replay_runs_engine_only(
    tmp_path: Path,
    workdir: Path,
    tool_settings: ToolSettings,
    recording_runner: RecordingRunner,
    grammar_files: tuple[Path, Path],
) -> None:
    replay_log = tmp_path / "replay.txt"
    replay_log.write_text("", "utf-8")

    result = dispatch_task(
        _engine_args(tmp_path, Task.REPLAY, grammar_files, replay_log_file_path=str(replay_log)),
        workdir,
        ToolChain(tools=tool_settings, runner=recording_runner),
    )

    assert result.task_result == 0
    assert result.analyzer_result is None
    assert result.testing_summary is None
    [request] = recording_runner.requests
    assert f"--replay_log {replay_log}" in request.arguments


def test_compile_task_returns_compiler_exit_code(
    tmp_path: Path,
    workdir: Path,
    tool_settings: ToolSettings,
    recording_runner: RecordingRunner,
) -> None:
    recording_runner.exit_codes.append(1)
    args = DriverArgs(
        output_dir_path=tmp_path / "DriverLogs",
        working_directory_path=tmp_path,
        task=Task.COMPILE,
        task_parameters=CompilerParameters(DEFAULT_COMPILE_CONFIG),
    )

    result = dispatch_task(args, workdir, ToolChain(tools=tool_settings, runner=recording_runner))

    assert result.task_result == 1
    assert result.analyzer_result is None
    assert not result.succeeded


def test_unexpected_exception_becomes_failed_task(
    tmp_path: Path,
    workdir: Path,
    recording_runner: RecordingRunner,
    grammar_files: tuple[Path, Path],
    caplog: pytest.LogCaptureFixture,
) -> None:
    toolchain = ToolChain(
        tools=ToolSettings(root_dir=tmp_path / "missing"),
        runner=recording_runner,
    )

    with caplog.at_level(logging.ERROR):
        result = dispatch_task(_engine_args(tmp_path, Task.TEST, grammar_files), workdir, toolchain)

    assert result.task_result == 1
    assert result.testing_summary is None
    assert "Task Test failed." in caplog.text
    assert "fuzzing engine" in caplog.text


def test_malformed_summary_fails_task(
    tmp_path: Path,
    workdir: Path,
    tool_settings: ToolSettings,
    recording_runner: RecordingRunner,
    grammar_files: tuple[Path, Path],
) -> None:
    (workdir / "testing_summary.json").write_text(
        json.dumps({"final_spec_coverage": "three / 4"}),
        "utf-8",
    )

    result = dispatch_task(
        _engine_args(tmp_path, Task.TEST, grammar_files),
        workdir,
        ToolChain(tools=tool_settings, runner=recording_runner),
    )

    assert result.task_result == 1


@pytest.mark.parametrize(
    ("task", "parameters"),
    [
        (Task.COMPILE, EngineParameters(DEFAULT_ENGINE_CONFIG)),
        (Task.TEST, CompilerParameters(DEFAULT_COMPILE_CONFIG)),
        (Task.FUZZ, UndefinedParameters()),
        (None, UndefinedParameters()),
    ],
)
def test_mismatched_parameters_raise_invariant_error(
    tmp_path: Path,
    workdir: Path,
    tool_settings: ToolSettings,
    recording_runner: RecordingRunner,
    task: Task | None,
    parameters: object,
) -> None:
    args = DriverArgs(
        output_dir_path=tmp_path / "DriverLogs",
        working_directory_path=tmp_path,
        task=task,
        task_parameters=parameters,
    )

    with pytest.raises(DriverInvariantError):
        dispatch_task(args, workdir, ToolChain(tools=tool_settings, runner=recording_runner))
    assert recording_runner.requests == []
