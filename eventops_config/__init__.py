"""
eventops_config -- single public entrypoint for engine settings.

Responsibility:
    Provides the ONLY way to obtain engine settings at runtime through
    ``get_active_settings()``.  No other component reads configuration
    files or environment variables directly.

Resolution order:
    1. explicit ``path`` argument,
    2. the ``EVENTOPS_CONFIG`` environment variable,
    3. ``eventops_config/sets/default.yaml``.

Failure modes:
    - ``FileNotFoundError`` -- the selected settings file does not exist.
    - ``ConfigurationError`` -- a value is mistyped or out of range.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from eventops_config.loader import load_settings
from eventops_config.schema import (
    BatchDefaults,
    EligibilityDefaults,
    EngineSettings,
    RunnerSettings,
)

_logger = logging.getLogger("eventops.config")

CONFIG_ENV_VAR = "EVENTOPS_CONFIG"
_DEFAULT_CONFIG_PATH = Path(__file__).parent / "sets" / "default.yaml"


def get_active_settings(path: Path | str | None = None) -> EngineSettings:
    """Load the active engine settings.

    Emits an ``eventops_config_loaded`` log record carrying the settings
    name, source and checksum.
    """
    if path is None:
        env_path = os.environ.get(CONFIG_ENV_VAR)
        source = Path(env_path) if env_path else _DEFAULT_CONFIG_PATH
    else:
        source = Path(path)

    settings = load_settings(source)

    _logger.info(
        "eventops_config_loaded",
        extra={
            "config_name": settings.name,
            "config_source": str(source),
            "checksum": settings.checksum,
        },
    )
    return settings


__all__ = [
    "BatchDefaults",
    "CONFIG_ENV_VAR",
    "EligibilityDefaults",
    "EngineSettings",
    "RunnerSettings",
    "get_active_settings",
]
