"""
Bulk certificate generation task.

Wraps the certificate issuance collaborator: participants of an event are
filtered by eligibility criteria at submission, then one certificate is
issued per eligible participant.  When the job asks for delivery, each
issued certificate is emailed through the mailer collaborator in the same
item operation.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any, Protocol

from eventops_kernel.exceptions import InfrastructureError, InvalidCriteriaError
from eventops_kernel.logging_config import get_logger

from eventops_batch.domain.eligibility import (
    ParticipantRecord,
    evaluate,
    participant_item,
)
from eventops_batch.domain.types import (
    CertificateType,
    EligibilityCriteria,
    ItemInput,
    ItemOutcome,
    JobKind,
)

logger = get_logger("batch.tasks.certificates")


class ParticipantDirectory(Protocol):
    """Read access to an event's registered participants."""

    def list_participants(self, event_id: str | int) -> Sequence[ParticipantRecord]:
        ...

    def get_participants(
        self, event_id: str | int, participant_ids: Sequence[str],
    ) -> Sequence[ParticipantRecord]:
        ...


class CertificateIssuer(Protocol):
    """Issues one certificate.  Success carries the certificate id.

    Issuing again for a participant that already holds a certificate of
    the same type returns the existing certificate id.
    """

    def issue(
        self,
        participant_id: str,
        event_id: str | int,
        certificate_type: CertificateType,
        template_id: str | None = None,
    ) -> ItemOutcome:
        ...


class CertificateMailer(Protocol):
    """Emails an issued certificate to its holder.  Raises on failure."""

    def send_certificate(
        self,
        participant_id: str,
        certificate_id: str,
        event_id: str | int,
        email_template_id: str | None = None,
    ) -> None:
        ...


class CertificateGenerationTask:
    """Issue certificates for every eligible participant of an event.

    Parameters:
        event_id: the event whose participants are certified.
        template_id: optional certificate template.
        certificate_type: ``CertificateType`` value (default attendance).
        send_email: email each issued certificate (requires a mailer).
        email_template_id: optional email template for delivery.
    """

    def __init__(
        self,
        directory: ParticipantDirectory,
        issuer: CertificateIssuer,
        mailer: CertificateMailer | None = None,
    ) -> None:
        self._directory = directory
        self._issuer = issuer
        self._mailer = mailer

    @property
    def kind(self) -> JobKind:
        return JobKind.CERTIFICATE_GENERATION

    @property
    def description(self) -> str:
        return "Bulk certificate generation for eligible event participants"

    @property
    def can_deliver(self) -> bool:
        return self._mailer is not None

    def target_ref(self, parameters: dict[str, Any]) -> str:
        return f"event:{parameters['event_id']}"

    def prepare_items(
        self,
        parameters: dict[str, Any],
        criteria: EligibilityCriteria | None,
    ) -> tuple[ItemInput, ...]:
        if criteria is None:
            raise InvalidCriteriaError(
                "minimum_attendance_percentage", None,
                "certificate jobs require eligibility criteria",
            )
        population = self._directory.list_participants(parameters["event_id"])
        return evaluate(population, criteria)

    def resolve_items(
        self,
        parameters: dict[str, Any],
        item_keys: Sequence[str],
    ) -> tuple[ItemInput, ...]:
        found = {
            p.participant_id: p
            for p in self._directory.get_participants(
                parameters["event_id"], list(item_keys),
            )
        }
        resolved = [found[key] for key in item_keys if key in found]
        return tuple(participant_item(i, p) for i, p in enumerate(resolved))

    def execute_item(
        self,
        item: ItemInput,
        parameters: dict[str, Any],
    ) -> ItemOutcome:
        outcome = self._issuer.issue(
            participant_id=item.item_key,
            event_id=parameters["event_id"],
            certificate_type=CertificateType(
                parameters.get("certificate_type", CertificateType.ATTENDANCE.value)
            ),
            template_id=parameters.get("template_id"),
        )
        if not parameters.get("send_email") or not outcome.succeeded:
            return outcome
        return self._deliver(item, outcome.result_ref, parameters)

    def _deliver(
        self,
        item: ItemInput,
        certificate_id: str | None,
        parameters: dict[str, Any],
    ) -> ItemOutcome:
        if self._mailer is None:
            raise RuntimeError("send_email requested but no certificate mailer is wired")
        try:
            self._mailer.send_certificate(
                participant_id=item.item_key,
                certificate_id=certificate_id,
                event_id=parameters["event_id"],
                email_template_id=parameters.get("email_template_id"),
            )
        except InfrastructureError:
            raise
        except Exception as exc:
            # The certificate exists; keep its id on the failed item.
            logger.warning(
                "certificate_email_failed",
                extra={
                    "participant_id": item.item_key,
                    "certificate_id": certificate_id,
                    "error": str(exc),
                },
            )
            return ItemOutcome.failure(
                f"email delivery failed: {exc}", result_ref=certificate_id,
            )
        return ItemOutcome.success(certificate_id)
