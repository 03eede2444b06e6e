"""
Fixtures and fake collaborators for the batch engine tests.

The fakes implement the collaborator protocols for real (no random
outcomes): each one decides success or failure from sets of ids the test
controls, and records every call it receives.
"""

from collections.abc import Callable
from uuid import UUID

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from eventops_config import EngineSettings, RunnerSettings
from eventops_kernel.db.base import Base
from eventops_kernel.exceptions import CollaboratorUnavailableError

import eventops_batch.models  # noqa: F401 -- registers tables on Base.metadata
from eventops_batch.domain.eligibility import ParticipantRecord, ScanRecord
from eventops_batch.domain.types import ItemOutcome
from eventops_batch.orchestrator import BatchOrchestrator, build_task_registry
from eventops_batch.services.registry import InMemoryJobRegistry


# =============================================================================
# Fake collaborators
# =============================================================================


def make_participants(
    count: int, attendance: float = 90.0, prefix: str = "p",
) -> list[ParticipantRecord]:
    return [
        ParticipantRecord(
            participant_id=f"{prefix}{i:03d}",
            name=f"Participant {i}",
            attendance_percentage=attendance,
        )
        for i in range(count)
    ]


class FakeDirectory:
    def __init__(self, participants=()):
        self.participants = list(participants)
        self.get_calls: list[tuple] = []

    def list_participants(self, event_id):
        return list(self.participants)

    def get_participants(self, event_id, participant_ids):
        self.get_calls.append((event_id, tuple(participant_ids)))
        wanted = set(participant_ids)
        return [p for p in self.participants if p.participant_id in wanted]


class FakeIssuer:
    """Issues ``cert-<id>`` unless the id is in one of the failure sets."""

    def __init__(self, fail_ids=(), raise_ids=(), systemic_ids=()):
        self.fail_ids = set(fail_ids)
        self.raise_ids = set(raise_ids)
        self.systemic_ids = set(systemic_ids)
        self.calls: list[str] = []
        self.requests: list[dict] = []
        self.on_issue: Callable[[str], None] | None = None

    def issue(self, participant_id, event_id, certificate_type, template_id=None):
        self.calls.append(participant_id)
        self.requests.append({
            "participant_id": participant_id,
            "event_id": event_id,
            "certificate_type": certificate_type,
            "template_id": template_id,
        })
        if self.on_issue is not None:
            self.on_issue(participant_id)
        if participant_id in self.systemic_ids:
            raise CollaboratorUnavailableError("certificate_store", "connection refused")
        if participant_id in self.raise_ids:
            raise RuntimeError(f"template rendering failed for {participant_id}")
        if participant_id in self.fail_ids:
            return ItemOutcome.failure("certificate already issued")
        return ItemOutcome.success(f"cert-{participant_id}")


class FakeMailer:
    """Records delivered certificates; fails or raises for chosen participants."""

    def __init__(self, fail_ids=(), systemic_ids=()):
        self.fail_ids = set(fail_ids)
        self.systemic_ids = set(systemic_ids)
        self.sent: list[dict] = []

    def send_certificate(self, participant_id, certificate_id, event_id, email_template_id=None):
        if participant_id in self.systemic_ids:
            raise CollaboratorUnavailableError("smtp", "connection refused")
        if participant_id in self.fail_ids:
            raise ValueError(f"mailbox unavailable for {participant_id}")
        self.sent.append({
            "participant_id": participant_id,
            "certificate_id": certificate_id,
            "event_id": event_id,
            "email_template_id": email_template_id,
        })


class FakeOfflineSource:
    """One default record list, or per-(device, batch) lists in ``batches``."""

    def __init__(self, records=(), batches=None, pending=()):
        self.records = list(records)
        self.batches = dict(batches or {})
        self.pending = list(pending)

    def list_pending_batches(self):
        return list(self.pending)

    def _records(self, device_id, batch_id):
        return self.batches.get((device_id, batch_id), self.records)

    def list_records(self, device_id, batch_id):
        return list(self._records(device_id, batch_id))

    def get_records(self, device_id, batch_id, record_ids):
        wanted = set(record_ids)
        return [r for r in self._records(device_id, batch_id) if r.record_id in wanted]


class FakeSyncTarget:
    def __init__(self, fail_ids=()):
        self.fail_ids = set(fail_ids)
        self.applied: list[ScanRecord] = []

    def apply_record(self, device_id, batch_id, scan_record):
        if scan_record.record_id in self.fail_ids:
            return ItemOutcome.failure("unknown QR code")
        self.applied.append(scan_record)
        return ItemOutcome.success(f"attendance-{scan_record.record_id}")


def make_scan_records(count: int, sync_status: str = "pending") -> list[ScanRecord]:
    return [
        ScanRecord(
            record_id=f"scan-{i:03d}",
            qr_code=f"QR{i:05d}",
            attendee=f"Attendee {i}",
            sync_status=sync_status,
        )
        for i in range(count)
    ]


# =============================================================================
# Engine fixtures
# =============================================================================


@pytest.fixture
def directory():
    return FakeDirectory(make_participants(10))


@pytest.fixture
def issuer():
    return FakeIssuer()


@pytest.fixture
def mailer():
    return FakeMailer()


@pytest.fixture
def offline_source():
    return FakeOfflineSource(make_scan_records(5))


@pytest.fixture
def sync_target():
    return FakeSyncTarget()


@pytest.fixture
def job_registry():
    return InMemoryJobRegistry()


@pytest.fixture
def task_registry(directory, issuer, offline_source, sync_target, mailer):
    return build_task_registry(
        directory=directory,
        issuer=issuer,
        source=offline_source,
        target=sync_target,
        mailer=mailer,
    )


@pytest.fixture
def sleeps():
    """Records every inter-batch pause requested by the executor."""
    return []


@pytest.fixture
def make_orchestrator(job_registry, task_registry, clock, sleeps):
    """Factory for orchestrators sharing the test's registry and fakes."""
    created: list[BatchOrchestrator] = []

    def _make(
        settings: EngineSettings | None = None,
        sleep: Callable[[float], object] | None = None,
        actor_id: UUID | None = None,
    ) -> BatchOrchestrator:
        orchestrator = BatchOrchestrator(
            job_registry=job_registry,
            task_registry=task_registry,
            settings=settings or EngineSettings(),
            clock=clock,
            sleep=sleep or sleeps.append,
            actor_id=actor_id,
        )
        created.append(orchestrator)
        return orchestrator

    yield _make

    for orchestrator in created:
        orchestrator.shutdown(timeout=5)


@pytest.fixture
def orchestrator(make_orchestrator):
    return make_orchestrator()


@pytest.fixture
def auto_start_settings():
    return EngineSettings(runner=RunnerSettings(auto_start_jobs=True))


# =============================================================================
# SQL persistence
# =============================================================================


@pytest.fixture
def sql_session_factory():
    """In-memory SQLite with the batch tables, shared across threads."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    try:
        yield sessionmaker(bind=engine, expire_on_commit=False)
    finally:
        engine.dispose()
