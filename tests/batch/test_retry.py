"""
Tests for eventops_batch.services.retry -- retry of failed items and cancel.
"""

from uuid import uuid4

import pytest

from eventops_kernel.exceptions import (
    InvalidStateError,
    JobNotFoundError,
    NothingToRetryError,
)

from eventops_batch.domain.types import JobConfig, JobFilter, JobStatus
from tests.conftest import TEST_ACTOR_ID


def _run_with_failures(orchestrator, issuer, fail_ids, **submit_kw):
    issuer.fail_ids = set(fail_ids)
    job_id = orchestrator.submit_certificate_job(
        event_id=1, config=JobConfig(batch_size=4), **submit_kw,
    )
    return orchestrator.run_job(job_id)


# =============================================================================
# Retry
# =============================================================================


class TestRetry:
    def test_retry_covers_exactly_the_failed_items(self, orchestrator, issuer):
        source = _run_with_failures(orchestrator, issuer, {"p002", "p005", "p008"})
        assert source.failed_items == 3

        retry_id = orchestrator.retry_job(source.job_id)
        retry = orchestrator.get_job(retry_id)

        assert retry.status == JobStatus.PENDING
        assert [i.item_key for i in retry.items] == ["p002", "p005", "p008"]
        assert [i.item_index for i in retry.items] == [0, 1, 2]
        assert retry.total_items == 3
        assert retry.parent_job_id == source.job_id
        assert retry.attempt == 2
        assert retry.kind == source.kind
        assert retry.target_ref == source.target_ref
        assert retry.config == source.config
        assert retry.parameters == source.parameters
        assert retry.correlation_id == source.correlation_id

    def test_source_job_unchanged(self, orchestrator, issuer):
        source = _run_with_failures(orchestrator, issuer, {"p001"})
        orchestrator.retry_job(source.job_id)
        assert orchestrator.get_job(source.job_id) == source

    def test_retry_runs_to_completion(self, orchestrator, issuer):
        source = _run_with_failures(orchestrator, issuer, {"p002", "p005", "p008"})
        issuer.fail_ids = set()
        issuer.calls.clear()

        retry = orchestrator.run_job(orchestrator.retry_job(source.job_id))

        assert retry.status == JobStatus.COMPLETED
        assert retry.successful_items == 3
        assert issuer.calls == ["p002", "p005", "p008"]

    def test_retry_of_a_retry(self, orchestrator, issuer):
        source = _run_with_failures(orchestrator, issuer, {"p002", "p005"})
        issuer.fail_ids = {"p005"}
        first = orchestrator.run_job(orchestrator.retry_job(source.job_id))

        second = orchestrator.get_job(orchestrator.retry_job(first.job_id))

        assert [i.item_key for i in second.items] == ["p005"]
        assert second.parent_job_id == first.job_id
        assert second.attempt == 3

    def test_retry_listed_under_parent(self, orchestrator, issuer):
        source = _run_with_failures(orchestrator, issuer, {"p000"})
        retry_id = orchestrator.retry_job(source.job_id)
        children = orchestrator.list_jobs(JobFilter(parent_job_id=source.job_id))
        assert [j.job_id for j in children] == [retry_id]

    def test_retry_of_failed_job(self, orchestrator, issuer):
        issuer.fail_ids = {"p000"}
        issuer.systemic_ids = {"p006"}
        source = orchestrator.run_job(orchestrator.submit_certificate_job(
            event_id=1, config=JobConfig(batch_size=4),
        ))
        assert source.status == JobStatus.FAILED

        retry = orchestrator.get_job(orchestrator.retry_job(source.job_id))
        assert [i.item_key for i in retry.items] == ["p000"]

    def test_cancelled_job_retries_failed_items_only(self, make_orchestrator, issuer):
        holder = {}
        orchestrator = make_orchestrator(
            sleep=lambda s: holder["o"].cancel_job(holder["id"]),
        )
        holder["o"] = orchestrator
        issuer.fail_ids = {"p001"}
        holder["id"] = orchestrator.submit_certificate_job(
            event_id=1, config=JobConfig.from_millis(4, 10),
        )
        source = orchestrator.run_job(holder["id"])
        assert source.status == JobStatus.CANCELLED

        retry = orchestrator.get_job(orchestrator.retry_job(source.job_id))
        assert [i.item_key for i in retry.items] == ["p001"]

    def test_actor_recorded(self, orchestrator, issuer):
        source = _run_with_failures(orchestrator, issuer, {"p003"})
        retry = orchestrator.get_job(
            orchestrator.retry_job(source.job_id, actor_id=TEST_ACTOR_ID),
        )
        assert retry.created_by == TEST_ACTOR_ID

    def test_creator_inherited_without_actor(self, orchestrator, issuer):
        creator = uuid4()
        source = _run_with_failures(orchestrator, issuer, {"p003"}, actor_id=creator)
        retry = orchestrator.get_job(orchestrator.retry_job(source.job_id))
        assert retry.created_by == creator


# =============================================================================
# Repeated retry of the same job
# =============================================================================


class TestRepeatedRetry:
    def test_items_succeeded_by_earlier_retry_not_issued_again(
        self, orchestrator, issuer,
    ):
        source = _run_with_failures(orchestrator, issuer, {"p002", "p005"})
        issuer.fail_ids = set()
        first = orchestrator.run_job(orchestrator.retry_job(source.job_id))
        assert first.failed_items == 0
        issuer.calls.clear()

        with pytest.raises(NothingToRetryError):
            orchestrator.retry_job(source.job_id)

        assert issuer.calls == []
        assert len(orchestrator.list_jobs()) == 2

    def test_second_retry_covers_only_items_still_failing(self, orchestrator, issuer):
        source = _run_with_failures(orchestrator, issuer, {"p002", "p005"})
        issuer.fail_ids = {"p005"}
        orchestrator.run_job(orchestrator.retry_job(source.job_id))
        issuer.fail_ids = set()
        issuer.calls.clear()

        second = orchestrator.run_job(orchestrator.retry_job(source.job_id))

        assert [i.item_key for i in second.items] == ["p005"]
        assert second.parent_job_id == source.job_id
        assert issuer.calls == ["p005"]

    def test_items_queued_in_pending_retry_excluded(self, orchestrator, issuer):
        source = _run_with_failures(orchestrator, issuer, {"p002"})
        orchestrator.retry_job(source.job_id)

        with pytest.raises(NothingToRetryError):
            orchestrator.retry_job(source.job_id)

    def test_success_deeper_in_retry_chain_counts(self, orchestrator, issuer):
        source = _run_with_failures(orchestrator, issuer, {"p002", "p005"})
        issuer.fail_ids = {"p005"}
        first = orchestrator.run_job(orchestrator.retry_job(source.job_id))
        issuer.fail_ids = set()
        orchestrator.run_job(orchestrator.retry_job(first.job_id))
        issuer.calls.clear()

        with pytest.raises(NothingToRetryError):
            orchestrator.retry_job(source.job_id)
        assert issuer.calls == []

    def test_unprocessed_items_of_cancelled_retry_retried_again(
        self, make_orchestrator, issuer,
    ):
        holder = {}
        orchestrator = make_orchestrator(
            sleep=lambda s: "id" in holder and holder["o"].cancel_job(holder["id"]),
        )
        holder["o"] = orchestrator
        source = _run_with_failures(
            orchestrator, issuer, {"p000", "p001", "p002", "p003", "p004", "p005"},
        )
        issuer.fail_ids = set()
        retry_id = orchestrator.retry_job(source.job_id)
        holder["id"] = retry_id
        first = orchestrator.run_job(retry_id)
        assert first.status == JobStatus.CANCELLED
        assert first.processed_items == 4

        second = orchestrator.get_job(orchestrator.retry_job(source.job_id))
        assert [i.item_key for i in second.items] == ["p004", "p005"]


# =============================================================================
# Retry re-resolution
# =============================================================================


class TestRetryResolution:
    def test_vanished_items_dropped_and_logged(
        self, orchestrator, issuer, directory, captured_logs,
    ):
        source = _run_with_failures(orchestrator, issuer, {"p002", "p005"})
        directory.participants = [
            p for p in directory.participants if p.participant_id != "p002"
        ]

        retry = orchestrator.get_job(orchestrator.retry_job(source.job_id))

        assert [i.item_key for i in retry.items] == ["p005"]
        dropped = next(
            r for r in captured_logs() if r["message"] == "job_retry_items_dropped"
        )
        assert dropped["level"] == "WARNING"
        assert dropped["dropped_keys"] == ["p002"]

    def test_eligibility_not_reapplied(self, orchestrator, issuer, directory):
        source = _run_with_failures(orchestrator, issuer, {"p004"})
        directory.participants = [
            p if p.participant_id != "p004" else type(p)(
                participant_id="p004", name=p.name, attendance_percentage=10.0,
            )
            for p in directory.participants
        ]

        retry = orchestrator.get_job(orchestrator.retry_job(source.job_id))
        assert [i.item_key for i in retry.items] == ["p004"]
        assert retry.items[0].payload["attendance_percentage"] == 10.0

    def test_all_items_vanished_gives_empty_retry(self, orchestrator, issuer, directory):
        source = _run_with_failures(orchestrator, issuer, {"p002"})
        directory.participants = []

        retry = orchestrator.run_job(orchestrator.retry_job(source.job_id))
        assert retry.total_items == 0
        assert retry.status == JobStatus.COMPLETED


# =============================================================================
# Retry rejections
# =============================================================================


class TestRetryRejected:
    def test_nothing_to_retry(self, orchestrator):
        source = orchestrator.run_job(orchestrator.submit_certificate_job(event_id=1))
        with pytest.raises(NothingToRetryError):
            orchestrator.retry_job(source.job_id)
        assert len(orchestrator.list_jobs()) == 1

    def test_failed_job_without_item_failures(self, orchestrator, issuer):
        issuer.systemic_ids = {"p000"}
        source = orchestrator.run_job(orchestrator.submit_certificate_job(event_id=1))
        assert source.status == JobStatus.FAILED
        with pytest.raises(NothingToRetryError):
            orchestrator.retry_job(source.job_id)

    def test_pending_job_rejected(self, orchestrator):
        job_id = orchestrator.submit_certificate_job(event_id=1)
        with pytest.raises(InvalidStateError) as exc_info:
            orchestrator.retry_job(job_id)
        assert exc_info.value.current_status == "pending"
        assert exc_info.value.expected == ("cancelled", "completed", "failed")
        assert len(orchestrator.list_jobs()) == 1

    def test_unknown_job(self, orchestrator):
        with pytest.raises(JobNotFoundError):
            orchestrator.retry_job(uuid4())


# =============================================================================
# Cancel
# =============================================================================


class TestCancel:
    def test_cancel_pending_rejected(self, orchestrator):
        job_id = orchestrator.submit_certificate_job(event_id=1)
        with pytest.raises(InvalidStateError):
            orchestrator.cancel_job(job_id)
        assert not orchestrator.get_job(job_id).cancel_requested

    def test_cancel_terminal_rejected(self, orchestrator):
        job_id = orchestrator.submit_certificate_job(event_id=1)
        orchestrator.run_job(job_id)
        with pytest.raises(InvalidStateError):
            orchestrator.cancel_job(job_id)

    def test_cancel_unknown(self, orchestrator):
        with pytest.raises(JobNotFoundError):
            orchestrator.cancel_job(uuid4())

    def test_cancel_is_idempotent_while_processing(self, orchestrator, issuer):
        job_id = orchestrator.submit_certificate_job(
            event_id=1, config=JobConfig(batch_size=2),
        )
        snapshots = []

        def on_issue(pid):
            if pid == "p000":
                snapshots.append(orchestrator.cancel_job(job_id))
                snapshots.append(orchestrator.cancel_job(job_id))

        issuer.on_issue = on_issue
        job = orchestrator.run_job(job_id)

        assert snapshots[0].version == snapshots[1].version
        assert job.status == JobStatus.CANCELLED
        assert job.processed_items == 2
