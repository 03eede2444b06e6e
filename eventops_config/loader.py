"""
Settings loader (``eventops_config.loader``).

Responsibility
--------------
Loads a YAML settings file and parses it into the frozen
``eventops_config.schema`` dataclasses.  Runtime code should call
``eventops_config.get_active_settings()`` instead of this module.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Out-of-range or mistyped values  -> ``ConfigurationError``.
"""

from __future__ import annotations

import hashlib
import json
import logging
from pathlib import Path
from typing import Any

import yaml

from eventops_config.schema import (
    BatchDefaults,
    EligibilityDefaults,
    EngineSettings,
    RunnerSettings,
)
from eventops_kernel.exceptions import ConfigurationError

_LOG_LEVELS = frozenset(logging.getLevelNamesMapping())
_CERTIFICATE_TYPES = frozenset({"attendance", "completion", "achievement"})


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ConfigurationError: if the top level is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ConfigurationError("<root>", f"expected a mapping in {path}")
    return data


def compute_checksum(data: dict[str, Any]) -> str:
    """Deterministic SHA-256 of the raw settings mapping."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def _require_int(section: str, key: str, value: Any, minimum: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigurationError(f"{section}.{key}", f"expected integer, got {value!r}")
    if value < minimum:
        raise ConfigurationError(f"{section}.{key}", f"must be >= {minimum}")
    return value


def _require_number(section: str, key: str, value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigurationError(f"{section}.{key}", f"expected number, got {value!r}")
    return float(value)


def parse_batch(data: dict[str, Any]) -> BatchDefaults:
    """Parse the ``batch`` section."""
    defaults = BatchDefaults()
    return BatchDefaults(
        batch_size=_require_int(
            "batch", "batch_size", data.get("batch_size", defaults.batch_size), 1,
        ),
        delay_between_batches_ms=_require_int(
            "batch",
            "delay_between_batches_ms",
            data.get("delay_between_batches_ms", defaults.delay_between_batches_ms),
            0,
        ),
    )


def parse_eligibility(data: dict[str, Any]) -> EligibilityDefaults:
    """Parse the ``eligibility`` section."""
    defaults = EligibilityDefaults()
    minimum = _require_number(
        "eligibility",
        "minimum_attendance_percentage",
        data.get("minimum_attendance_percentage", defaults.minimum_attendance_percentage),
    )
    if not 0.0 <= minimum <= 100.0:
        raise ConfigurationError(
            "eligibility.minimum_attendance_percentage", "must be within 0..100",
        )
    certificate_type = data.get("certificate_type", defaults.certificate_type)
    if certificate_type not in _CERTIFICATE_TYPES:
        raise ConfigurationError(
            "eligibility.certificate_type",
            f"expected one of {sorted(_CERTIFICATE_TYPES)}",
        )
    return EligibilityDefaults(
        minimum_attendance_percentage=minimum,
        certificate_type=certificate_type,
    )


def parse_runner(data: dict[str, Any]) -> RunnerSettings:
    """Parse the ``runner`` section."""
    defaults = RunnerSettings()
    auto_start = data.get("auto_start_jobs", defaults.auto_start_jobs)
    if not isinstance(auto_start, bool):
        raise ConfigurationError("runner.auto_start_jobs", "expected boolean")
    timeout = _require_number(
        "runner",
        "shutdown_timeout_seconds",
        data.get("shutdown_timeout_seconds", defaults.shutdown_timeout_seconds),
    )
    if timeout < 0:
        raise ConfigurationError("runner.shutdown_timeout_seconds", "must be >= 0")
    return RunnerSettings(
        max_concurrent_jobs=_require_int(
            "runner",
            "max_concurrent_jobs",
            data.get("max_concurrent_jobs", defaults.max_concurrent_jobs),
            1,
        ),
        auto_start_jobs=auto_start,
        shutdown_timeout_seconds=timeout,
    )


def parse_settings(data: dict[str, Any]) -> EngineSettings:
    """
    Parse a complete ``EngineSettings`` from a dict.

    Missing sections fall back to the schema defaults.
    """
    log_level = str(data.get("log_level", "INFO")).upper()
    if log_level not in _LOG_LEVELS:
        raise ConfigurationError("log_level", f"unknown level {log_level!r}")

    database_url = data.get("database_url")
    if database_url is not None and not isinstance(database_url, str):
        raise ConfigurationError("database_url", "expected string or null")

    return EngineSettings(
        name=str(data.get("name", "default")),
        batch=parse_batch(data.get("batch") or {}),
        eligibility=parse_eligibility(data.get("eligibility") or {}),
        runner=parse_runner(data.get("runner") or {}),
        log_level=log_level,
        database_url=database_url,
        checksum=compute_checksum(data),
    )


def load_settings(path: Path) -> EngineSettings:
    """Load and parse a settings file."""
    return parse_settings(load_yaml_file(path))
