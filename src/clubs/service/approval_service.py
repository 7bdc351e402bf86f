"""Organizer decisions on registrations awaiting approval."""

import uuid

import structlog
from django.db import transaction
from django.db.models import QuerySet
from django.http import HttpRequest
from django.utils import timezone
from django.utils.translation import gettext as _
from pydantic import BaseModel, ConfigDict

from accounts.models import ClubUser
from clubs.exceptions import StaleRegistrationError
from clubs.models import Event, EventRSVP
from common.audit import log_audit_event

from .registration import transitions
from .registration.enums import Decision
from .registration.types import EventTerms

logger = structlog.get_logger(__name__)

AUDIT_ACTIONS = {
    Decision.APPROVE: "event.rsvp_approve",
    Decision.REJECT: "event.rsvp_reject",
}


class DecisionOutcome(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    rsvp: EventRSVP
    message: str


class BulkDecisionOutcome(BaseModel):
    decision: Decision
    updated_count: int
    user_ids: list[uuid.UUID]


def list_pending(event: Event) -> QuerySet[EventRSVP]:
    """Requests awaiting a decision, oldest first."""
    return (
        EventRSVP.objects.with_user()
        .filter(event=event, status=EventRSVP.RsvpStatus.PENDING_APPROVAL)
        .order_by("created_at")
    )


def list_registrations(event: Event, status: EventRSVP.RsvpStatus | None = None) -> QuerySet[EventRSVP]:
    """Every registration of the event, newest activity first."""
    qs = EventRSVP.objects.with_user().filter(event=event)
    if status:
        qs = qs.filter(status=status)
    return qs.order_by("-updated_at")


def _decision_fields(decision: Decision, decided_by: ClubUser, reason: str | None) -> dict[str, object]:
    now = timezone.now()
    if decision == Decision.APPROVE:
        return {
            "approved_at": now,
            "approved_by": decided_by,
            "rejected_at": None,
            "rejection_reason": None,
            "updated_at": now,
        }
    return {
        "rejected_at": now,
        "rejection_reason": reason,
        "approved_at": None,
        "approved_by": None,
        "updated_at": now,
    }


def _audit_decision(
    event: Event,
    user_id: uuid.UUID,
    decision: Decision,
    decided_by: ClubUser,
    new_status: str,
    reason: str | None,
    request: HttpRequest | None,
    bulk: bool = False,
) -> None:
    metadata: dict[str, object] = {
        "club_id": str(event.club_id),
        "user_id": str(user_id),
        "status": new_status,
    }
    if reason:
        metadata["reason"] = reason
    if bulk:
        metadata["bulk"] = True
    log_audit_event(
        actor=decided_by,
        action=AUDIT_ACTIONS[decision],
        target_type="event",
        target_id=event.pk,
        metadata=metadata,
        request=request,
    )


@transaction.atomic
def decide(
    event: Event,
    user_id: uuid.UUID,
    decision: Decision,
    decided_by: ClubUser,
    reason: str | None = None,
    request: HttpRequest | None = None,
) -> DecisionOutcome:
    """Approve or reject a single pending request.

    The write is conditional on the row still being pending, so two organizers deciding the
    same request concurrently cannot both succeed.

    Raises:
        StaleRegistrationError: the request does not exist or was already decided.
    """
    terms = EventTerms.for_event(event)
    new_status = transitions.organizer_transition(EventRSVP.RsvpStatus.PENDING_APPROVAL, decision, terms)
    updated = EventRSVP.objects.filter(
        event=event, user_id=user_id, status=EventRSVP.RsvpStatus.PENDING_APPROVAL
    ).update(status=new_status, **_decision_fields(decision, decided_by, reason))
    if not updated:
        raise StaleRegistrationError()

    rsvp = EventRSVP.objects.with_user().get(event=event, user_id=user_id)
    _audit_decision(event, user_id, decision, decided_by, new_status, reason, request)
    logger.info(
        "event_rsvp_decided",
        event_id=str(event.pk),
        user_id=str(user_id),
        decision=decision,
        status=new_status,
    )

    if decision == Decision.REJECT:
        message = _("Request rejected.")
    elif new_status == EventRSVP.RsvpStatus.APPROVED_PENDING_PAYMENT:
        message = _("Request approved. The member must complete payment to confirm their spot.")
    else:
        message = _("Request approved. The member is confirmed.")
    return DecisionOutcome(rsvp=rsvp, message=message)


def approve(
    event: Event, user_id: uuid.UUID, decided_by: ClubUser, request: HttpRequest | None = None
) -> DecisionOutcome:
    """Approve a pending request."""
    return decide(event, user_id, Decision.APPROVE, decided_by, request=request)


def reject(
    event: Event,
    user_id: uuid.UUID,
    decided_by: ClubUser,
    reason: str | None = None,
    request: HttpRequest | None = None,
) -> DecisionOutcome:
    """Reject a pending request, optionally recording a reason."""
    return decide(event, user_id, Decision.REJECT, decided_by, reason=reason, request=request)


@transaction.atomic
def bulk_decide(
    event: Event,
    user_ids: list[uuid.UUID],
    decision: Decision,
    decided_by: ClubUser,
    reason: str | None = None,
    request: HttpRequest | None = None,
) -> BulkDecisionOutcome:
    """Apply one decision to many requests.

    Each user is checked independently: ids that are not pending are skipped and the rest
    are decided. Returns how many requests changed.
    """
    terms = EventTerms.for_event(event)
    new_status = transitions.organizer_transition(EventRSVP.RsvpStatus.PENDING_APPROVAL, decision, terms)

    pending_ids = list(
        EventRSVP.objects.select_for_update()
        .filter(event=event, user_id__in=user_ids, status=EventRSVP.RsvpStatus.PENDING_APPROVAL)
        .values_list("user_id", flat=True)
    )
    updated = EventRSVP.objects.filter(
        event=event, user_id__in=pending_ids, status=EventRSVP.RsvpStatus.PENDING_APPROVAL
    ).update(status=new_status, **_decision_fields(decision, decided_by, reason))

    for user_id in pending_ids:
        _audit_decision(event, user_id, decision, decided_by, new_status, reason, request, bulk=True)

    logger.info(
        "event_rsvp_bulk_decided",
        event_id=str(event.pk),
        decision=decision,
        requested=len(user_ids),
        updated=updated,
    )
    return BulkDecisionOutcome(decision=decision, updated_count=updated, user_ids=pending_ids)
