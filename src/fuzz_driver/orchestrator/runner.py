"""Run one task end to end with fault-isolated upload and telemetry stages."""

from __future__ import annotations

import logging
import signal
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

import httpx

from fuzz_driver import __version__, tracing
from fuzz_driver.config import Settings
from fuzz_driver.orchestrator.backend import ProcessRunner, SubprocessRunner
from fuzz_driver.orchestrator.dispatch import dispatch_task
from fuzz_driver.orchestrator.log_collection import (
    collect_local_logs,
    task_upload_dir_path,
    upload_inputs,
    upload_logs,
)
from fuzz_driver.orchestrator.models import DriverArgs, DriverInvariantError, TaskResult
from fuzz_driver.orchestrator.summary import TestingSummary
from fuzz_driver.orchestrator.telemetry import TelemetryClient, load_machine_id
from fuzz_driver.orchestrator.tools import ToolChain

logger = logging.getLogger(__name__)

INVALID_ARGUMENTS_TASK_NAME = "invalid arguments"


@contextmanager
def isolated_stage(name: str, context: object = None) -> Iterator[None]:
    """Log and swallow any failure raised inside a non-essential stage."""

    try:
        yield
    except Exception:
        logger.exception("%s failed, please contact support. Context: %s", name, context)


class DriverRunner:
    """Dispatches one parsed invocation and always runs the post-run stages."""

    def __init__(
        self,
        *,
        settings: Settings,
        process_runner: ProcessRunner | None = None,
        telemetry_transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.settings = settings
        self.toolchain = ToolChain(
            tools=settings.tools,
            runner=process_runner or SubprocessRunner(),
        )
        self.telemetry_transport = telemetry_transport
        self.interrupted = False

    def run(self, args: DriverArgs) -> TaskResult:
        """Run the task; SIGINT is intercepted from input upload through log upload."""

        if args.task is None:
            raise DriverInvariantError(f"No task selected: {args!r}")

        with self._interrupt_handler():
            return self._run_with_post_stages(args, args.task.value)

    def _run_with_post_stages(self, args: DriverArgs, task_name: str) -> TaskResult:
        task_working_directory = tracing.recreate_dir(args.working_directory_path / task_name)
        upload_dir: Path | None = None
        if args.logs_upload_root_dir_path is None:
            logger.info("Log share was not specified.  Logs will not be uploaded.")
        else:
            upload_dir = task_upload_dir_path(args.logs_upload_root_dir_path, task_name)

        with isolated_stage("Input upload", upload_dir):
            if upload_dir is not None:
                logger.info("Uploading input files...")
                upload_inputs(args, upload_dir)

        execution_id = uuid.uuid4()
        telemetry = self._open_telemetry()
        try:
            with isolated_stage("Telemetry (start)", task_name):
                if telemetry is not None:
                    telemetry.driver_started(
                        version=__version__,
                        task_name=task_name,
                        execution_id=execution_id,
                    )

            logger.info("Starting task %s...", task_name)
            try:
                result = dispatch_task(args, task_working_directory, self.toolchain)
            except DriverInvariantError:
                logger.critical("Invalid driver arguments reached dispatch: %r", args)
                with isolated_stage("Telemetry (invalid arguments)", task_name):
                    if telemetry is not None:
                        telemetry.driver_started(
                            version=__version__,
                            task_name=INVALID_ARGUMENTS_TASK_NAME,
                            execution_id=execution_id,
                        )
                raise
            logger.info("Task %s %s.", task_name, "succeeded" if result.succeeded else "failed")

            with isolated_stage("Telemetry (finish)", task_name):
                if telemetry is not None:
                    self._report_finished(telemetry, task_name, execution_id, result)
        finally:
            if telemetry is not None:
                telemetry.close()

        with isolated_stage("Log upload", upload_dir):
            logger.info("Collecting logs...")
            tracing.flush()
            collect_local_logs(
                args.output_dir_path,
                task_working_directory,
                f"{tracing.LOG_FILE_PREFIX}*",
            )
            if upload_dir is not None:
                logger.info("Uploading logs...")
                upload_logs(task_working_directory, upload_dir)

        return result

    def _open_telemetry(self) -> TelemetryClient | None:
        telemetry_settings = self.settings.telemetry
        if not telemetry_settings.effective_instrumentation_key:
            logger.debug("Telemetry is disabled.")
            return None
        with isolated_stage("Telemetry setup", telemetry_settings.endpoint):
            return TelemetryClient(
                machine_id=load_machine_id(telemetry_settings.machine_id_path),
                instrumentation_key=telemetry_settings.effective_instrumentation_key,
                endpoint=telemetry_settings.endpoint,
                timeout_seconds=telemetry_settings.timeout_seconds,
                transport=self.telemetry_transport,
            )
        return None

    def _report_finished(
        self,
        telemetry: TelemetryClient,
        task_name: str,
        execution_id: uuid.UUID,
        result: TaskResult,
    ) -> None:
        summary = result.testing_summary or TestingSummary.empty()
        telemetry.driver_finished(
            version=__version__,
            task_name=task_name,
            execution_id=execution_id,
            status=result.task_result,
            bug_buckets=summary.bug_bucket_counts(),
            spec_coverage=summary.spec_coverage_counts(),
        )
        if result.analyzer_result is not None:
            telemetry.results_analyzer_finished(
                version=__version__,
                task_name=task_name,
                execution_id=execution_id,
                status=result.analyzer_result,
            )

    @contextmanager
    def _interrupt_handler(self) -> Iterator[None]:
        if not hasattr(signal, "SIGINT"):
            yield
            return

        def _handler(_signum: int, _frame: object | None) -> None:
            self.interrupted = True
            logger.info(
                "Ctrl-C intercepted. Long running tasks should have exited. Uploading logs.",
            )

        try:
            original = signal.signal(signal.SIGINT, _handler)
        except ValueError:
            # Signal handlers can only be installed in main thread.
            yield
            return
        try:
            yield
        finally:
            signal.signal(signal.SIGINT, original)
