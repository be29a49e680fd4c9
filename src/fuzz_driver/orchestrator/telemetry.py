"""Anonymous usage telemetry sent over HTTP."""

from __future__ import annotations

import logging
import uuid
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import httpx

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 10.0
DRIVER_STARTED_EVENT = "DriverStarted"
DRIVER_FINISHED_EVENT = "DriverFinished"
RESULTS_ANALYZER_FINISHED_EVENT = "ResultsAnalyzerFinished"


def load_machine_id(path: Path) -> str:
    """Return the persistent anonymous machine id, creating it on first use."""

    if path.is_file():
        stored = path.read_text("utf-8").strip()
        try:
            return str(uuid.UUID(stored))
        except ValueError:
            logger.warning("Replacing malformed machine id in %s", path)

    machine_id = str(uuid.uuid4())
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(machine_id, "utf-8")
    return machine_id


class TelemetryClient:
    """Posts driver lifecycle events; sends nothing when the key is empty."""

    def __init__(
        self,
        *,
        machine_id: str,
        instrumentation_key: str,
        endpoint: str,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.machine_id = machine_id
        self.instrumentation_key = instrumentation_key
        self.endpoint = endpoint
        self._client = httpx.Client(
            timeout=httpx.Timeout(timeout_seconds),
            transport=transport,
        )

    @property
    def enabled(self) -> bool:
        return bool(self.instrumentation_key)

    def driver_started(
        self,
        *,
        version: str,
        task_name: str,
        execution_id: uuid.UUID,
        features: list[str] | None = None,
    ) -> None:
        self.track(
            DRIVER_STARTED_EVENT,
            {
                "version": version,
                "task": task_name,
                "executionId": str(execution_id),
                "features": ",".join(features or []),
            },
        )

    def driver_finished(  # noqa: PLR0913
        self,
        *,
        version: str,
        task_name: str,
        execution_id: uuid.UUID,
        status: int,
        bug_buckets: dict[str, str],
        spec_coverage: dict[str, str],
    ) -> None:
        properties = {
            "version": version,
            "task": task_name,
            "executionId": str(execution_id),
            "status": str(status),
            **spec_coverage,
        }
        properties.update({f"bucket:{name}": value for name, value in bug_buckets.items()})
        self.track(
            DRIVER_FINISHED_EVENT,
            properties,
            measurements={"bugBucketCount": float(len(bug_buckets))},
        )

    def results_analyzer_finished(
        self,
        *,
        version: str,
        task_name: str,
        execution_id: uuid.UUID,
        status: int,
    ) -> None:
        self.track(
            RESULTS_ANALYZER_FINISHED_EVENT,
            {
                "version": version,
                "task": task_name,
                "executionId": str(execution_id),
                "status": str(status),
            },
        )

    def track(
        self,
        name: str,
        properties: dict[str, str],
        measurements: dict[str, float] | None = None,
    ) -> None:
        """Send one event; HTTP failures propagate to the caller."""

        if not self.enabled:
            logger.debug("Telemetry disabled, skipping %s event.", name)
            return
        response = self._client.post(
            self.endpoint,
            json=self._envelope(name, properties, measurements or {}),
        )
        response.raise_for_status()

    def _envelope(
        self,
        name: str,
        properties: dict[str, str],
        measurements: dict[str, float],
    ) -> dict[str, Any]:
        return {
            "name": "Microsoft.ApplicationInsights.Event",
            "time": datetime.now(UTC).isoformat(),
            "iKey": self.instrumentation_key,
            "tags": {"ai.device.id": self.machine_id},
            "data": {
                "baseType": "EventData",
                "baseData": {
                    "ver": 2,
                    "name": name,
                    "properties": properties,
                    "measurements": measurements,
                },
            },
        }

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> TelemetryClient:
        return self

    def __exit__(self, *_: object) -> None:
        self.close()
