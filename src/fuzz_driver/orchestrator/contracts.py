"""File-based contracts shared with the compiler, engine and analyzer."""

from __future__ import annotations

import json
import os
from dataclasses import replace
from pathlib import Path
from typing import Any

from fuzz_driver.orchestrator.models import DEFAULT_COMPILE_CONFIG, CompileConfig

COMPILER_CONFIG_FILE_NAME = "config.json"
DEFAULT_DICTIONARY_FILE_NAME = "defaultDict.json"

_PATH_KEYS: dict[str, str] = {
    "GrammarInputFilePath": "grammar_input_file_path",
    "CustomDictionaryFilePath": "custom_dictionary_file_path",
    "AnnotationFilePath": "annotation_file_path",
    "ExampleConfigFilePath": "example_config_file_path",
    "EngineSettingsFilePath": "engine_settings_file_path",
    "GrammarOutputDirectoryPath": "grammar_output_directory_path",
}
_BOOL_KEYS: dict[str, str] = {
    "IncludeOptionalParameters": "include_optional_parameters",
    "DataFuzzing": "data_fuzzing",
}
_OPTIONAL_BOOL_KEYS: dict[str, str] = {
    "UseQueryExamples": "use_query_examples",
    "UseBodyExamples": "use_body_examples",
}
_SPEC_KEY = "SwaggerSpecFilePath"
_KNOWN_KEYS = {_SPEC_KEY, *_PATH_KEYS, *_BOOL_KEYS, *_OPTIONAL_BOOL_KEYS}

DEFAULT_MUTATIONS_DICTIONARY: dict[str, Any] = {
    "restler_fuzzable_string": ["fuzzstring"],
    "restler_fuzzable_string_unquoted": [],
    "restler_fuzzable_datetime": ["6/25/2019 12:00:00 AM"],
    "restler_fuzzable_datetime_unquoted": [],
    "restler_fuzzable_date": ["2019-06-26"],
    "restler_fuzzable_date_unquoted": [],
    "restler_fuzzable_uuid4": ["566048da-ed19-4cd3-8e0a-b7e0e1ec4d72"],
    "restler_fuzzable_uuid4_unquoted": [],
    "restler_fuzzable_int": ["0", "1"],
    "restler_fuzzable_number": ["0.1", "1.2"],
    "restler_fuzzable_bool": ["true"],
    "restler_fuzzable_object": ["{}"],
    "restler_custom_payload": {},
    "restler_custom_payload_unquoted": {},
    "restler_custom_payload_uuid4_suffix": {},
    "restler_custom_payload_header": {},
    "restler_custom_payload_query": {},
    "shadow_values": {},
}


class CompileConfigError(ValueError):
    """Compiler configuration file does not match the expected format."""


def write_json(path: Path, payload: dict[str, Any]) -> None:
    """Persist JSON payload using deterministic formatting."""

    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload, ensure_ascii=False, indent=2, sort_keys=True), "utf-8")


def load_json(path: Path) -> dict[str, Any]:
    """Load JSON document and validate top-level object type."""

    payload = json.loads(path.read_text("utf-8-sig"))
    if not isinstance(payload, dict):
        raise TypeError(f"Expected JSON object in {path}")
    return payload


def write_default_dictionary(path: Path) -> Path:
    """Write the built-in mutation dictionary and return its path."""

    write_json(path, DEFAULT_MUTATIONS_DICTIONARY)
    return path


def compile_config_to_json(config: CompileConfig) -> dict[str, Any]:
    """Render the compiler's JSON view; unknown keys pass through unchanged."""

    payload: dict[str, Any] = dict(config.extra)
    if config.swagger_spec_file_paths is not None:
        payload[_SPEC_KEY] = list(config.swagger_spec_file_paths)
    for key, attribute in _PATH_KEYS.items():
        value = getattr(config, attribute)
        if value is not None:
            payload[key] = value
    for key, attribute in {**_BOOL_KEYS, **_OPTIONAL_BOOL_KEYS}.items():
        value = getattr(config, attribute)
        if value is not None:
            payload[key] = value
    return payload


def compile_config_from_json(raw: dict[str, Any]) -> CompileConfig:
    """Deserialize and validate a compiler configuration object."""

    values: dict[str, Any] = {}

    specs = raw.get(_SPEC_KEY)
    if specs is not None:
        if isinstance(specs, str):
            specs = [specs]
        if not isinstance(specs, list) or not all(isinstance(item, str) for item in specs):
            raise CompileConfigError(f"{_SPEC_KEY} must be a list of paths")
        values["swagger_spec_file_paths"] = tuple(specs)

    for key, attribute in _PATH_KEYS.items():
        value = raw.get(key)
        if value is None:
            continue
        if not isinstance(value, str):
            raise CompileConfigError(f"{key} must be a string path")
        values[attribute] = value

    for key, attribute in _BOOL_KEYS.items():
        value = raw.get(key)
        if value is None:
            continue
        if not isinstance(value, bool):
            raise CompileConfigError(f"{key} must be a boolean")
        values[attribute] = value

    for key, attribute in _OPTIONAL_BOOL_KEYS.items():
        if key not in raw:
            continue
        value = raw[key]
        if value is not None and not isinstance(value, bool):
            raise CompileConfigError(f"{key} must be a boolean or null")
        values[attribute] = value

    extra = {key: value for key, value in raw.items() if key not in _KNOWN_KEYS}
    return replace(DEFAULT_COMPILE_CONFIG, extra=extra, **values)


def read_compile_config(path: Path) -> CompileConfig:
    """Load a compiler configuration file."""

    try:
        raw = load_json(path)
    except (OSError, TypeError, json.JSONDecodeError) as error:
        raise CompileConfigError(str(error)) from error
    return compile_config_from_json(raw)


def write_compile_config(path: Path, config: CompileConfig) -> None:
    write_json(path, compile_config_to_json(config))


def convert_relative_to_abs_paths(config_file_path: Path, config: CompileConfig) -> CompileConfig:
    """Resolve relative paths in ``config`` against the config file's directory."""

    base_dir = Path(os.path.abspath(config_file_path)).parent
    updates: dict[str, Any] = {}
    if config.swagger_spec_file_paths is not None:
        updates["swagger_spec_file_paths"] = tuple(
            _absolute(base_dir, item) for item in config.swagger_spec_file_paths
        )
    for attribute in _PATH_KEYS.values():
        value = getattr(config, attribute)
        if value is not None:
            updates[attribute] = _absolute(base_dir, value)
    return replace(config, **updates)


def _absolute(base_dir: Path, value: str) -> str:
    return os.path.abspath(base_dir / os.path.expanduser(value))
