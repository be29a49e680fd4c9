"""Copy task inputs and logs to a local buffer or a remote log share."""

from __future__ import annotations

import logging
import shutil
import socket
from datetime import UTC, datetime
from pathlib import Path

from fuzz_driver.orchestrator.models import CompilerParameters, DriverArgs, EngineParameters

logger = logging.getLogger(__name__)

TASK_INPUTS_DIR_NAME = "task_inputs"
TASK_LOGS_DIR_NAME = "task_logs"


def get_logs_dir_path(root_dir: Path, *, now: datetime | None = None) -> Path:
    """Unique upload directory for this machine and point in time."""

    timestamp = (now or datetime.now(UTC)).strftime("%Y%m%d_%H%M%S")
    return root_dir / f"{timestamp}_{socket.gethostname()}"


def task_upload_dir_path(root_dir: Path, task_name: str, *, now: datetime | None = None) -> Path:
    logs_dir = get_logs_dir_path(root_dir, now=now)
    return logs_dir.with_name(f"{logs_dir.name}_{task_name}")


def task_input_files(args: DriverArgs) -> list[Path]:
    """Files the user supplied for the selected task."""

    parameters = args.task_parameters
    candidates: list[str | None] = []
    if isinstance(parameters, CompilerParameters):
        config = parameters.config
        candidates.extend(config.swagger_spec_file_paths or ())
        candidates.extend(
            [
                config.grammar_input_file_path,
                config.custom_dictionary_file_path,
                config.annotation_file_path,
                config.example_config_file_path,
                config.engine_settings_file_path,
            ],
        )
    elif isinstance(parameters, EngineParameters):
        config = parameters.config
        candidates.extend(
            [
                config.grammar_file_path,
                config.dictionary_file_path,
                config.settings_file_path,
                config.replay_log_file_path,
            ],
        )
    return [Path(candidate) for candidate in candidates if candidate]


def upload_inputs(
    args: DriverArgs,
    upload_dir: Path,
    subdir_name: str = TASK_INPUTS_DIR_NAME,
) -> list[Path]:
    """Copy the task's input files into ``upload_dir/subdir_name``."""

    target_dir = upload_dir / subdir_name
    target_dir.mkdir(parents=True, exist_ok=True)
    copied: list[Path] = []
    for source in task_input_files(args):
        if not source.is_file():
            logger.warning("Input file %s no longer exists, skipping upload.", source)
            continue
        destination = _unique_destination(target_dir, source.name)
        shutil.copy2(source, destination)
        copied.append(destination)
    return copied


def collect_local_logs(logs_dir: Path, task_working_directory: Path, pattern: str) -> list[Path]:
    """Copy top-level driver log files into the task directory."""

    copied: list[Path] = []
    for source in sorted(logs_dir.glob(pattern)):
        if not source.is_file():
            continue
        destination = task_working_directory / source.name
        shutil.copyfile(source, destination)
        copied.append(destination)
    return copied


def upload_logs(
    task_working_directory: Path,
    upload_dir: Path,
    subdir_name: str = TASK_LOGS_DIR_NAME,
) -> Path:
    """Copy the consolidated task directory to the log share."""

    target_dir = upload_dir / subdir_name
    shutil.copytree(task_working_directory, target_dir, dirs_exist_ok=True)
    return target_dir


def _unique_destination(target_dir: Path, name: str) -> Path:
    destination = target_dir / name
    index = 1
    while destination.exists():
        destination = target_dir / f"{index}_{name}"
        index += 1
    return destination
