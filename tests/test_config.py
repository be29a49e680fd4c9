from __future__ import annotations

import sys
from pathlib import Path

import allure
import pytest

from fuzz_driver.config import (
    DEFAULT_TELEMETRY_ENDPOINT,
    Settings,
    TelemetrySettings,
    ToolSettings,
)

pytestmark = [
    allure.epic("Driver"),
    allure.feature("Configuration"),
]

_ENV_NAMES = (
    "FUZZ_DRIVER_TOOLS_DIR",
    "FUZZ_DRIVER_DOTNET",
    "FUZZ_DRIVER_PYTHON",
    "FUZZ_DRIVER_LOG_SHARE_DIR",
    "FUZZ_DRIVER_TELEMETRY_OPTOUT",
    "FUZZ_DRIVER_TELEMETRY_KEY",
    "FUZZ_DRIVER_TELEMETRY_ENDPOINT",
    "FUZZ_DRIVER_TELEMETRY_TIMEOUT_SECONDS",
    "FUZZ_DRIVER_MACHINE_ID_PATH",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in _ENV_NAMES:
        monkeypatch.delenv(name, raising=False)


def test_from_env_defaults(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.chdir(tmp_path)

    settings = Settings.from_env()

    assert settings.tools.root_dir == tmp_path
    assert settings.tools.dotnet_executable == "dotnet"
    assert settings.tools.python_executable == sys.executable
    assert settings.telemetry.endpoint == DEFAULT_TELEMETRY_ENDPOINT
    assert settings.telemetry.instrumentation_key == ""
    assert settings.telemetry.timeout_seconds == 10.0
    assert settings.log_share_dir is None


def test_from_env_reads_overrides(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("FUZZ_DRIVER_TOOLS_DIR", str(tmp_path / "restler"))
    monkeypatch.setenv("FUZZ_DRIVER_DOTNET", "/opt/dotnet/dotnet")
    monkeypatch.setenv("FUZZ_DRIVER_LOG_SHARE_DIR", str(tmp_path / "share"))
    monkeypatch.setenv("FUZZ_DRIVER_TELEMETRY_KEY", " ikey ")
    monkeypatch.setenv("FUZZ_DRIVER_TELEMETRY_TIMEOUT_SECONDS", "2.5")
    monkeypatch.setenv("FUZZ_DRIVER_MACHINE_ID_PATH", str(tmp_path / "machine_id"))

    settings = Settings.from_env()

    assert settings.tools.compiler_path == (
        tmp_path / "restler" / "compiler" / "Restler.CompilerExe.dll"
    )
    assert settings.tools.dotnet_executable == "/opt/dotnet/dotnet"
    assert settings.log_share_dir == tmp_path / "share"
    assert settings.telemetry.effective_instrumentation_key == "ikey"
    assert settings.telemetry.timeout_seconds == 2.5
    assert settings.telemetry.machine_id_path == tmp_path / "machine_id"


def test_opt_out_clears_instrumentation_key(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("FUZZ_DRIVER_TELEMETRY_KEY", "ikey")
    monkeypatch.setenv("FUZZ_DRIVER_TELEMETRY_OPTOUT", "yes")

    settings = Settings.from_env()

    assert settings.telemetry.opt_out is True
    assert settings.telemetry.effective_instrumentation_key == ""


def test_from_env_rejects_invalid_boolean(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("FUZZ_DRIVER_TELEMETRY_OPTOUT", "maybe")

    with pytest.raises(ValueError, match="Invalid boolean value for FUZZ_DRIVER_TELEMETRY_OPTOUT"):
        Settings.from_env()


@pytest.mark.parametrize("value", ["0", "-1", "soon"])
def test_from_env_rejects_invalid_timeout(monkeypatch: pytest.MonkeyPatch, value: str) -> None:
    monkeypatch.setenv("FUZZ_DRIVER_TELEMETRY_TIMEOUT_SECONDS", value)

    with pytest.raises(ValueError, match="FUZZ_DRIVER_TELEMETRY_TIMEOUT_SECONDS"):
        Settings.from_env()


def test_tool_locations_are_relative_to_root(tmp_path: Path) -> None:
    tools = ToolSettings(root_dir=tmp_path)

    assert tools.engine_script_path == tmp_path / "engine" / "restler.py"
    assert tools.engine_executable_path == tmp_path / "engine" / "engine.exe"
    assert tools.results_analyzer_path == (
        tmp_path / "resultsAnalyzer" / "Restler.ResultsAnalyzer.dll"
    )


def test_telemetry_defaults_to_home_machine_id() -> None:
    assert TelemetrySettings().machine_id_path == Path.home() / ".fuzz-driver" / "machine_id"
