"""
Engine settings schema.

Defines the typed, frozen form of the engine configuration.  YAML files are
parsed into these types by the loader; runtime code only ever sees an
``EngineSettings`` instance obtained from ``get_active_settings()``.
"""

from __future__ import annotations

from dataclasses import dataclass, field

# ---------------------------------------------------------------------------
# Batch pacing
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class BatchDefaults:
    """Default pacing applied when a submission does not carry its own."""

    batch_size: int = 10
    delay_between_batches_ms: int = 1000


# ---------------------------------------------------------------------------
# Eligibility defaults
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class EligibilityDefaults:
    """Criteria used for certificate jobs submitted without explicit criteria."""

    minimum_attendance_percentage: float = 75.0
    certificate_type: str = "attendance"


# ---------------------------------------------------------------------------
# Runner / infrastructure
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RunnerSettings:
    """Thread pool sizing and dispatch behaviour."""

    max_concurrent_jobs: int = 4
    auto_start_jobs: bool = False
    shutdown_timeout_seconds: float = 30.0


@dataclass(frozen=True)
class EngineSettings:
    """Complete engine configuration."""

    name: str = "default"
    batch: BatchDefaults = field(default_factory=BatchDefaults)
    eligibility: EligibilityDefaults = field(default_factory=EligibilityDefaults)
    runner: RunnerSettings = field(default_factory=RunnerSettings)
    log_level: str = "INFO"
    database_url: str | None = None  # None = in-memory registry
    checksum: str = ""
