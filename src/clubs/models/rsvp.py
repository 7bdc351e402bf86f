import typing as t

from django.conf import settings
from django.db import models

from common.models import TimeStampedModel

from .event import Event


class EventRSVPQuerySet(models.QuerySet["EventRSVP"]):
    def reserved(self) -> t.Self:
        """Registrations that hold a seat against the event's capacity."""
        return self.filter(status__in=RESERVED_STATUSES)

    def with_user(self) -> t.Self:
        """Select the registrant along with the registration."""
        return self.select_related("user")


class EventRSVP(TimeStampedModel):
    """A user's registration for an event.

    There is at most one row per (event, user); re-registering moves the same row through
    its statuses rather than creating a new one.
    """

    class RsvpStatus(models.TextChoices):
        NOT_GOING = "not_going", "Not going"
        GOING = "going", "Going"
        PENDING_PAYMENT = "pending_payment", "Pending payment"
        PENDING_APPROVAL = "pending_approval", "Pending approval"
        APPROVED_PENDING_PAYMENT = "approved_pending_payment", "Approved, pending payment"
        REJECTED = "rejected", "Rejected"
        PAYMENT_FAILED = "payment_failed", "Payment failed"

    event = models.ForeignKey(Event, on_delete=models.CASCADE, related_name="rsvps")
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="rsvps")
    status = models.CharField(max_length=32, choices=RsvpStatus.choices, default=RsvpStatus.NOT_GOING, db_index=True)
    approved_at = models.DateTimeField(null=True, blank=True)
    approved_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name="+"
    )
    rejected_at = models.DateTimeField(null=True, blank=True)
    rejection_reason = models.TextField(null=True, blank=True)
    paid_at = models.DateTimeField(null=True, blank=True)
    paid_amount_cents = models.PositiveIntegerField(null=True, blank=True)
    stripe_checkout_session_id = models.CharField(max_length=255, null=True, blank=True, db_index=True)
    stripe_payment_intent_id = models.CharField(max_length=255, null=True, blank=True)

    objects = EventRSVPQuerySet.as_manager()

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=["event", "user"], name="unique_event_rsvp_user"),
        ]
        indexes = [
            models.Index(fields=["event", "status"], name="eventrsvp_event_status_idx"),
        ]

    def __str__(self) -> str:
        return f"{self.user_id} -> {self.event_id} ({self.status})"


RESERVED_STATUSES: frozenset[str] = frozenset(
    {
        EventRSVP.RsvpStatus.GOING,
        EventRSVP.RsvpStatus.PENDING_PAYMENT,
        EventRSVP.RsvpStatus.PENDING_APPROVAL,
        EventRSVP.RsvpStatus.APPROVED_PENDING_PAYMENT,
    }
)
