"""Read the engine's testing summary report into coverage and bug metrics."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from fuzz_driver.orchestrator.contracts import load_json

logger = logging.getLogger(__name__)

TESTING_SUMMARY_FILE_NAME = "testing_summary.json"
MAIN_DRIVER_KEY = "main_driver"


class TestingSummaryError(ValueError):
    """Testing summary report exists but cannot be interpreted."""

    __test__ = False


@dataclass(frozen=True, slots=True)
class TestingSummary:
    """Read-only view over one testing summary report."""

    __test__ = False

    source_path: Path | None = None
    covered_requests: int = 0
    total_requests: int = 0
    requests_sent: dict[str, int] = field(default_factory=dict)
    bug_buckets: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def empty(cls) -> TestingSummary:
        return cls()

    @property
    def found(self) -> bool:
        return self.source_path is not None

    @property
    def coverage(self) -> tuple[int, int]:
        return self.covered_requests, self.total_requests

    @property
    def main_driver_requests(self) -> int:
        return self.requests_sent.get(MAIN_DRIVER_KEY, 0)

    def spec_coverage_counts(self) -> dict[str, str]:
        """Request statistics reported with the finish event."""

        if not self.found:
            return {}
        return {
            "total_executed_requests_main_driver": str(self.main_driver_requests),
            "covered_spec_requests": str(self.covered_requests),
            "total_spec_requests": str(self.total_requests),
        }

    def bug_bucket_counts(self) -> dict[str, str]:
        return {
            bucket: value if isinstance(value, str) else json.dumps(value, sort_keys=True)
            for bucket, value in self.bug_buckets.items()
        }


def find_testing_summary(working_directory: Path) -> Path | None:
    """Return the first testing summary found under ``working_directory``."""

    matches = sorted(working_directory.rglob(TESTING_SUMMARY_FILE_NAME))
    return matches[0] if matches else None


def read_testing_summary(working_directory: Path) -> TestingSummary:
    """Extract metrics from the task directory; empty when no report exists."""

    summary_path = find_testing_summary(working_directory)
    if summary_path is None:
        logger.info("Testing summary was not found.")
        return TestingSummary.empty()

    summary = parse_testing_summary(summary_path, load_json(summary_path))
    logger.info(
        "Request coverage (successful / total): %d / %d",
        summary.covered_requests,
        summary.total_requests,
    )
    if summary.bug_buckets:
        logger.info("Bugs were found!")
        logger.info(
            "Bug buckets:%s",
            "".join(
                f"\n{bucket}: {value}" for bucket, value in summary.bug_bucket_counts().items()
            ),
        )
    else:
        logger.info("No bugs were found.")
    return summary


def parse_testing_summary(source_path: Path, raw: dict[str, Any]) -> TestingSummary:
    """Validate a deserialized testing summary document."""

    coverage = raw.get("final_spec_coverage")
    if not isinstance(coverage, str):
        raise TestingSummaryError(f"final_spec_coverage must be a string in {source_path}")
    covered, total = parse_coverage(coverage)

    requests_sent = raw.get("total_requests_sent", {})
    if not isinstance(requests_sent, dict):
        raise TestingSummaryError(f"total_requests_sent must be an object in {source_path}")
    for driver, count in requests_sent.items():
        if isinstance(count, bool) or not isinstance(count, int):
            raise TestingSummaryError(
                f"total_requests_sent[{driver!r}] must be an integer in {source_path}",
            )

    bug_buckets = raw.get("bug_buckets", {})
    if not isinstance(bug_buckets, dict):
        raise TestingSummaryError(f"bug_buckets must be an object in {source_path}")

    return TestingSummary(
        source_path=source_path,
        covered_requests=covered,
        total_requests=total,
        requests_sent=dict(requests_sent),
        bug_buckets=dict(bug_buckets),
    )


def parse_coverage(value: str) -> tuple[int, int]:
    """Parse ``"<covered> / <total>"`` into integers."""

    parts = [part.strip() for part in value.split("/")]
    if len(parts) != 2:  # noqa: PLR2004
        raise TestingSummaryError(f"Malformed final_spec_coverage: {value!r}")
    try:
        return int(parts[0]), int(parts[1])
    except ValueError as error:
        raise TestingSummaryError(f"Malformed final_spec_coverage: {value!r}") from error
