"""RegistrationManager: applies a user's RSVP to an event."""

import structlog
from django.db import IntegrityError, transaction
from django.utils.translation import gettext as _
from ninja.errors import HttpError

from accounts.models import ClubUser
from clubs.exceptions import RegistrationNotAllowedError
from clubs.models import RESERVED_STATUSES, Event, EventRSVP, Membership
from clubs.service import capacity

from . import transitions
from .types import EventTerms, RSVPResult

logger = structlog.get_logger(__name__)

# Fields that describe a previous pass through the pipeline and are cleared on re-entry.
DECISION_FIELDS = ("approved_at", "approved_by", "rejected_at", "rejection_reason")
PAYMENT_FIELDS = ("paid_at", "paid_amount_cents", "stripe_checkout_session_id", "stripe_payment_intent_id")


class RegistrationManager:
    """The Registration Manager Class.

    It is responsible for moving a user's registration through its statuses, making sure
    no seat is taken without passing the capacity check under the event lock.
    """

    def __init__(self, user: ClubUser, event: Event) -> None:
        """Initialize the RegistrationManager."""
        self.user = user
        self.event = event

    @transaction.atomic
    def rsvp(self, target: EventRSVP.RsvpStatus) -> RSVPResult:
        """RSVP to an event.

        A "going" request enters the approval/payment pipeline, or confirms outright for a
        free event without approval. A holder asking "going" again gets their current state
        back unchanged.

        Raises:
            RegistrationNotAllowedError, InvalidRSVPTransitionError, CapacityExceededError
        """
        self._assert_may_register(target)

        event = capacity.lock_event(self.event.pk)
        existing = EventRSVP.objects.select_for_update().filter(event=event, user=self.user).first()
        current = existing.status if existing else None
        terms = EventTerms.for_event(event)

        new_status = transitions.user_transition(current, target, terms)

        if existing is not None and new_status == current:
            return self._result(existing, changed=False)

        if new_status in RESERVED_STATUSES and current not in RESERVED_STATUSES:
            capacity.assert_capacity(event)

        rsvp = self._write(event, existing, new_status, reentry=current not in RESERVED_STATUSES)
        logger.info(
            "event_rsvp_updated",
            event_id=str(event.pk),
            user_id=str(self.user.pk),
            previous_status=current,
            status=new_status,
        )
        return self._result(rsvp)

    def _assert_may_register(self, target: EventRSVP.RsvpStatus) -> None:
        club = self.event.club
        if club.organizer_id == self.user.pk:
            raise HttpError(400, str(_("Organizers cannot RSVP to their own events.")))

        # Members-only: a free event in a paid club is a membership perk.
        if (
            target == EventRSVP.RsvpStatus.GOING
            and club.is_paid
            and not self.event.is_paid
            and not Membership.is_active_member(self.user.pk, club.pk)
        ):
            raise RegistrationNotAllowedError(_("An active membership is required for this event."))

    def _write(
        self, event: Event, existing: EventRSVP | None, status: EventRSVP.RsvpStatus, reentry: bool
    ) -> EventRSVP:
        """Persist the new status on the single (event, user) row."""
        if existing is None:
            try:
                with transaction.atomic():
                    return EventRSVP.objects.create(event=event, user=self.user, status=status)
            except IntegrityError:
                existing = EventRSVP.objects.select_for_update().get(event=event, user=self.user)

        existing.status = status
        update_fields = ["status", "updated_at"]
        if reentry and status != EventRSVP.RsvpStatus.NOT_GOING:
            for field in (*DECISION_FIELDS, *PAYMENT_FIELDS):
                setattr(existing, field, None)
            update_fields.extend((*DECISION_FIELDS, *PAYMENT_FIELDS))
        existing.save(update_fields=update_fields)
        return existing

    def _result(self, rsvp: EventRSVP, changed: bool = True) -> RSVPResult:
        return RSVPResult(
            rsvp=rsvp,
            requires_payment=rsvp.status
            in (EventRSVP.RsvpStatus.PENDING_PAYMENT, EventRSVP.RsvpStatus.APPROVED_PENDING_PAYMENT),
            requires_approval=rsvp.status == EventRSVP.RsvpStatus.PENDING_APPROVAL,
            changed=changed,
        )
