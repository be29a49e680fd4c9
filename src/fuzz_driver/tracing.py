"""Process-wide logging lifecycle."""

from __future__ import annotations

import logging
import os
import shutil
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

LOG_FILE_PREFIX = "fuzz_driver"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
CONSOLE_FORMAT = "%(levelname)s: %(message)s"


def recreate_dir(path: Path) -> Path:
    if path.exists():
        shutil.rmtree(path)
    path.mkdir(parents=True)
    return path


@contextmanager
def file_tracing(logs_dir: Path, *, level: int = logging.INFO) -> Iterator[Path]:
    """Route all log records to a fresh file in ``logs_dir`` and the console.

    Handlers are flushed, detached and closed however the block exits.
    """

    recreate_dir(logs_dir)
    log_path = logs_dir / f"{LOG_FILE_PREFIX}.{os.getpid()}.log"
    file_handler = logging.FileHandler(log_path, encoding="utf-8")
    file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    console_handler = logging.StreamHandler()
    console_handler.setFormatter(logging.Formatter(CONSOLE_FORMAT))

    root = logging.getLogger()
    previous_level = root.level
    root.setLevel(level)
    root.addHandler(file_handler)
    root.addHandler(console_handler)
    try:
        yield log_path
    finally:
        for handler in (file_handler, console_handler):
            handler.flush()
            root.removeHandler(handler)
            handler.close()
        root.setLevel(previous_level)


def flush() -> None:
    """Push buffered records of every root handler to their sinks."""

    for handler in logging.getLogger().handlers:
        handler.flush()
