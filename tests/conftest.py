"""Shared test fixtures."""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

from fuzz_driver.config import Settings, TelemetrySettings, ToolSettings
from fuzz_driver.orchestrator.backend import ProcessResult, ProcessRunRequest
from fuzz_driver.orchestrator.backend.subprocess_backend import persist_output

_FAKE_COMPILER = """
import json
import os
import sys
from pathlib import Path

config = json.loads(Path(sys.argv[1]).read_text("utf-8"))
output_dir = Path(config["GrammarOutputDirectoryPath"])
(output_dir / "grammar.py").write_text("# grammar\\n", "utf-8")
print("compiled", sys.argv[1])
sys.exit(int(os.environ.get("FAKE_COMPILER_EXIT", "0")))
"""

_FAKE_ENGINE = """
import json
import os
import sys
from pathlib import Path

Path("engine_args.json").write_text(json.dumps(sys.argv[1:]), "utf-8")
logs_dir = Path("RestlerResults") / "experiment" / "logs"
logs_dir.mkdir(parents=True, exist_ok=True)
summary = {
    "final_spec_coverage": "7 / 10",
    "total_requests_sent": {"gc": 3, "main_driver": 42},
    "bug_buckets": {"main_driver_500": {"bug_count": 1}},
}
(logs_dir / "testing_summary.json").write_text(json.dumps(summary), "utf-8")
print("engine done")
sys.exit(int(os.environ.get("FAKE_ENGINE_EXIT", "0")))
"""

_FAKE_ANALYZER = """
import json
import sys
from pathlib import Path

Path("analyzer_args.json").write_text(json.dumps(sys.argv[1:]), "utf-8")
print("analyzed")
"""


class RecordingRunner:
    """Process runner double that records requests instead of launching tools."""

    def __init__(self) -> None:
        self.requests: list[ProcessRunRequest] = []
        self.exit_codes: list[int] = []

    def run(self, request: ProcessRunRequest) -> ProcessResult:
        self.requests.append(request)
        exit_code = self.exit_codes.pop(0) if self.exit_codes else 0
        result = ProcessResult(exit_code=exit_code, stdout="out", stderr="err")
        persist_output(request, result)
        return result


@pytest.fixture()
def recording_runner() -> RecordingRunner:
    return RecordingRunner()


@pytest.fixture()
def tool_settings(tmp_path: Path) -> ToolSettings:
    """Toolchain layout whose tools are small Python scripts."""

    root = tmp_path / "tools"
    for relative, source in (
        ("compiler/Restler.CompilerExe.dll", _FAKE_COMPILER),
        ("engine/restler.py", _FAKE_ENGINE),
        ("resultsAnalyzer/Restler.ResultsAnalyzer.dll", _FAKE_ANALYZER),
    ):
        path = root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(source.strip() + "\n", "utf-8")
    return ToolSettings(
        root_dir=root,
        dotnet_executable=sys.executable,
        python_executable=sys.executable,
    )


@pytest.fixture()
def settings(tmp_path: Path, tool_settings: ToolSettings) -> Settings:
    return Settings(
        tools=tool_settings,
        telemetry=TelemetrySettings(
            opt_out=True,
            machine_id_path=tmp_path / "machine" / "machine_id",
        ),
    )


@pytest.fixture()
def grammar_files(tmp_path: Path) -> tuple[Path, Path]:
    """Existing grammar and dictionary files for engine tasks."""

    inputs = tmp_path / "inputs"
    inputs.mkdir()
    grammar = inputs / "grammar.py"
    grammar.write_text("# grammar\n", "utf-8")
    dictionary = inputs / "dict.json"
    dictionary.write_text("{}\n", "utf-8")
    return grammar, dictionary
