"""Runtime configuration for the driver, sourced from the environment."""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field
from pathlib import Path

DEFAULT_TELEMETRY_ENDPOINT = "https://dc.services.visualstudio.com/v2/track"


@dataclass(slots=True)
class ToolSettings:
    """Locations of the external tools the driver launches."""

    root_dir: Path = field(default_factory=Path.cwd)
    dotnet_executable: str = "dotnet"
    python_executable: str = sys.executable

    @property
    def compiler_path(self) -> Path:
        return self.root_dir / "compiler" / "Restler.CompilerExe.dll"

    @property
    def engine_script_path(self) -> Path:
        return self.root_dir / "engine" / "restler.py"

    @property
    def engine_executable_path(self) -> Path:
        return self.root_dir / "engine" / "engine.exe"

    @property
    def results_analyzer_path(self) -> Path:
        return self.root_dir / "resultsAnalyzer" / "Restler.ResultsAnalyzer.dll"


@dataclass(slots=True)
class TelemetrySettings:
    """Telemetry destination and opt-out."""

    opt_out: bool = False
    instrumentation_key: str = ""
    endpoint: str = DEFAULT_TELEMETRY_ENDPOINT
    machine_id_path: Path = field(
        default_factory=lambda: Path.home() / ".fuzz-driver" / "machine_id",
    )
    timeout_seconds: float = 10.0

    @property
    def effective_instrumentation_key(self) -> str:
        """Key used for sending; empty when the user opted out."""

        if self.opt_out:
            return ""
        return self.instrumentation_key


@dataclass(slots=True)
class Settings:
    """Driver settings grouped by concern."""

    tools: ToolSettings = field(default_factory=ToolSettings)
    telemetry: TelemetrySettings = field(default_factory=TelemetrySettings)
    log_share_dir: Path | None = None

    @classmethod
    def from_env(cls) -> Settings:
        """Load settings from environment with defaults for a local install."""

        tools_dir = os.getenv("FUZZ_DRIVER_TOOLS_DIR", "").strip()
        machine_id_path = os.getenv("FUZZ_DRIVER_MACHINE_ID_PATH", "").strip()
        telemetry_defaults = TelemetrySettings()
        return cls(
            tools=ToolSettings(
                root_dir=Path(tools_dir) if tools_dir else Path.cwd(),
                dotnet_executable=_env_str("FUZZ_DRIVER_DOTNET", "dotnet"),
                python_executable=_env_str("FUZZ_DRIVER_PYTHON", sys.executable),
            ),
            telemetry=TelemetrySettings(
                opt_out=_env_bool("FUZZ_DRIVER_TELEMETRY_OPTOUT", default=False),
                instrumentation_key=os.getenv("FUZZ_DRIVER_TELEMETRY_KEY", "").strip(),
                endpoint=_env_str("FUZZ_DRIVER_TELEMETRY_ENDPOINT", DEFAULT_TELEMETRY_ENDPOINT),
                machine_id_path=(
                    Path(machine_id_path)
                    if machine_id_path
                    else telemetry_defaults.machine_id_path
                ),
                timeout_seconds=_env_positive_float(
                    "FUZZ_DRIVER_TELEMETRY_TIMEOUT_SECONDS",
                    default=telemetry_defaults.timeout_seconds,
                ),
            ),
            log_share_dir=log_share_dir_from_env(),
        )


def log_share_dir_from_env() -> Path | None:
    """Default log-upload root; read on its own so argument parsing needs no other setting."""

    value = os.getenv("FUZZ_DRIVER_LOG_SHARE_DIR", "").strip()
    return Path(value) if value else None


def _env_str(name: str, default: str) -> str:
    value = os.getenv(name, "").strip()
    return value or default


def _env_positive_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = float(raw)
    except ValueError as error:
        raise ValueError(f"Invalid numeric value for {name}: {raw!r}") from error
    if value <= 0:
        raise ValueError(f"{name} must be > 0.")
    return value


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    raise ValueError(f"Invalid boolean value for {name}: {value!r}")
