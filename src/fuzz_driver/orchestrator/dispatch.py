"""Map a validated task to the external tool sequence it needs."""

from __future__ import annotations

import logging
from pathlib import Path

from fuzz_driver.orchestrator.models import (
    CompilerParameters,
    DriverArgs,
    DriverInvariantError,
    EngineConfig,
    EngineParameters,
    Task,
    TaskResult,
)
from fuzz_driver.orchestrator.summary import read_testing_summary
from fuzz_driver.orchestrator.tools import ToolChain

logger = logging.getLogger(__name__)


def dispatch_task(
    args: DriverArgs,
    task_working_directory: Path,
    toolchain: ToolChain,
) -> TaskResult:
    """Run the task, converting tool failures into ``task_result = 1``.

    A task/parameters mismatch is a defect and propagates as
    :class:`DriverInvariantError` instead of being reported as a failed task.
    """

    try:
        return _run_task(args, task_working_directory, toolchain)
    except DriverInvariantError:
        raise
    except Exception:
        logger.exception("Task %s failed.", args.task.value if args.task else None)
        return TaskResult(task_result=1)


def _run_task(args: DriverArgs, working_directory: Path, toolchain: ToolChain) -> TaskResult:
    task, parameters = args.task, args.task_parameters

    if task == Task.COMPILE and isinstance(parameters, CompilerParameters):
        return TaskResult(task_result=toolchain.compile(working_directory, parameters.config))

    if task in (Task.TEST, Task.FUZZ_LEAN) and isinstance(parameters, EngineParameters):
        result = toolchain.run_smoke_test(working_directory, parameters.config)
        return _post_engine_steps(result, working_directory, parameters.config, toolchain)

    if task == Task.FUZZ and isinstance(parameters, EngineParameters):
        result = toolchain.fuzz(working_directory, parameters.config)
        return _post_engine_steps(result, working_directory, parameters.config, toolchain)

    if task == Task.REPLAY and isinstance(parameters, EngineParameters):
        return TaskResult(task_result=toolchain.replay(working_directory, parameters.config))

    raise DriverInvariantError(f"Invalid driver arguments: {args!r}")


def _post_engine_steps(
    engine_result: int,
    working_directory: Path,
    config: EngineConfig,
    toolchain: ToolChain,
) -> TaskResult:
    if engine_result != 0:
        return TaskResult(task_result=engine_result)

    analyzer_result: int | None = None
    if config.run_results_analyzer:
        analyzer_result = toolchain.run_results_analyzer(
            working_directory,
            config.dictionary_file_path or "",
        )

    return TaskResult(
        task_result=engine_result,
        analyzer_result=analyzer_result,
        testing_summary=read_testing_summary(working_directory),
    )
