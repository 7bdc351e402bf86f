"""Webhook reconciler: applies Stripe's authoritative payment outcomes to local state.

Every handler is idempotent; Stripe redelivers events and does not guarantee their order.
"""

import typing as t
import uuid
from datetime import UTC, datetime

import stripe
import structlog
from django.conf import settings
from django.db import transaction
from django.utils import timezone
from pydantic import BaseModel
from stripe.checkout import Session

from clubs.models import EventRSVP, Membership
from clubs.schema.stripe_events import (
    CheckoutSessionCompleted,
    CheckoutSessionObject,
    CheckoutSessionPaymentFailed,
    InvoicePaid,
    InvoicePaymentFailed,
    StripeWebhookEvent,
    SubscriptionDeleted,
    SubscriptionObject,
    SubscriptionUpdated,
)

from .club_service import membership_status_for, upsert_membership
from .registration.enums import PaymentConfirmation
from .registration.transitions import FAILABLE_STATUSES, PAYABLE_STATUSES

logger = structlog.get_logger(__name__)

PAID_SESSION_STATUSES = frozenset({"paid", "no_payment_required"})


class WebhookOutcome(BaseModel):
    event_id: str
    event_type: str
    processed: bool


def confirm_event_payment(
    *,
    event_id: uuid.UUID,
    user_id: uuid.UUID,
    session_id: str,
    payment_intent_id: str | None,
    amount_cents: int | None,
) -> PaymentConfirmation:
    """Confirm a registration after a successful payment.

    The update only matches a registration still awaiting payment, so a redelivered event,
    or the redirect and the webhook racing each other, confirm it exactly once. Only the
    checkout session last opened for the registration can confirm it.
    """
    now = timezone.now()
    updated = (
        EventRSVP.objects.filter(event_id=event_id, user_id=user_id, status__in=PAYABLE_STATUSES)
        .filter(stripe_checkout_session_id=session_id)
        .update(
            status=EventRSVP.RsvpStatus.GOING,
            paid_at=now,
            paid_amount_cents=amount_cents,
            stripe_checkout_session_id=session_id,
            stripe_payment_intent_id=payment_intent_id,
            updated_at=now,
        )
    )
    log = logger.bind(event_id=str(event_id), user_id=str(user_id), session_id=session_id)
    if updated:
        log.info("event_payment_confirmed", amount_cents=amount_cents)
        return PaymentConfirmation.CONFIRMED

    rsvp = EventRSVP.objects.filter(event_id=event_id, user_id=user_id).first()
    if rsvp is None:
        log.warning("event_payment_unknown_registration")
        return PaymentConfirmation.MISSING
    if rsvp.status == EventRSVP.RsvpStatus.GOING:
        log.info("stripe_webhook_duplicate_payment_success")
        return PaymentConfirmation.ALREADY_CONFIRMED
    if rsvp.status in PAYABLE_STATUSES:
        log.warning("event_payment_for_stale_session", current_session_id=rsvp.stripe_checkout_session_id)
        return PaymentConfirmation.NOT_PAYABLE
    log.warning("event_payment_for_unpayable_registration", status=rsvp.status)
    return PaymentConfirmation.NOT_PAYABLE


def _subscription_period_end(subscription: t.Mapping[str, t.Any]) -> datetime | None:
    timestamp = subscription.get("current_period_end")
    if timestamp is None:
        items = (subscription.get("items") or {}).get("data") or []
        if items:
            timestamp = items[0].get("current_period_end")
    return datetime.fromtimestamp(timestamp, tz=UTC) if timestamp else None


def _sync_memberships_for_subscription(subscription_id: str, status: str | None, period_end: datetime | None) -> int:
    fields: dict[str, t.Any] = {"status": membership_status_for(status), "updated_at": timezone.now()}
    if period_end:
        fields["current_period_end"] = period_end
    return Membership.objects.filter(stripe_subscription_id=subscription_id).update(**fields)


class StripeEventHandler:
    """Dispatches a parsed webhook event to its handler."""

    def __init__(self, event: StripeWebhookEvent) -> None:
        self.event = event

    def handle(self) -> WebhookOutcome:
        """Run the handler for this event in its own transaction.

        A failing handler is logged and reported as an unprocessed outcome; its writes are
        rolled back.
        """
        handler_method = getattr(self, self.event.handler, self.handle_unknown_event)
        log = logger.bind(stripe_event_id=self.event.id, stripe_event_type=self.event.type)
        try:
            with transaction.atomic():
                handler_method(self.event)
        except Exception:
            log.exception("stripe_webhook_handler_failed")
            return WebhookOutcome(event_id=self.event.id, event_type=self.event.type, processed=False)
        return WebhookOutcome(event_id=self.event.id, event_type=self.event.type, processed=True)

    def handle_unknown_event(self, event: StripeWebhookEvent) -> None:
        logger.info("stripe_webhook_unhandled_event", event_type=event.type)

    def handle_checkout_session_completed(self, event: CheckoutSessionCompleted) -> None:
        """Confirm a paid registration, or activate a membership for a subscription checkout."""
        session = event.data.object
        if session.metadata.event_id:
            self._apply_event_payment(session)
        elif session.mode == "subscription" or session.subscription:
            self._activate_membership(session)
        else:
            logger.warning("stripe_session_missing_metadata", session_id=session.id)

    def handle_checkout_session_payment_failed(self, event: CheckoutSessionPaymentFailed) -> None:
        """Release the seat of a registration whose delayed payment failed."""
        session = event.data.object
        event_id, user_id = session.metadata.event_id, session.metadata.user_id
        if not event_id or not user_id:
            logger.warning("stripe_session_missing_metadata", session_id=session.id)
            return
        updated = (
            EventRSVP.objects.filter(event_id=event_id, user_id=user_id, status__in=FAILABLE_STATUSES)
            .filter(stripe_checkout_session_id=session.id)
            .update(status=EventRSVP.RsvpStatus.PAYMENT_FAILED, updated_at=timezone.now())
        )
        logger.info(
            "event_payment_failed",
            event_id=str(event_id),
            user_id=str(user_id),
            session_id=session.id,
            updated=updated,
        )

    def handle_customer_subscription_updated(self, event: SubscriptionUpdated) -> None:
        """Mirror the subscription's current status onto its membership."""
        payload = event.data.object
        subscription = self._current_subscription(payload)
        period_end = _subscription_period_end(subscription)
        status = subscription.get("status")

        updated = _sync_memberships_for_subscription(payload.id, status, period_end)
        if updated:
            logger.info("membership_subscription_synced", subscription_id=payload.id, status=status)
            return

        # The checkout completion may not have arrived yet.
        club_id, user_id = payload.metadata.club_id, payload.metadata.user_id
        if not club_id or not user_id:
            logger.warning("stripe_subscription_missing_metadata", subscription_id=payload.id)
            return
        upsert_membership(
            user_id,
            club_id,
            status=membership_status_for(status),
            stripe_subscription_id=payload.id,
            current_period_end=period_end,
        )

    def handle_customer_subscription_deleted(self, event: SubscriptionDeleted) -> None:
        """Deactivate the membership of an ended subscription."""
        subscription = event.data.object
        updated = Membership.objects.filter(stripe_subscription_id=subscription.id).update(
            status=Membership.MembershipStatus.INACTIVE, updated_at=timezone.now()
        )
        if not updated:
            logger.info("stripe_subscription_deleted_unknown", subscription_id=subscription.id)
            return
        logger.info("membership_subscription_ended", subscription_id=subscription.id)

    def handle_invoice_paid(self, event: InvoicePaid) -> None:
        """Extend the membership period after a renewal payment."""
        self._sync_invoice_subscription(event.data.object.subscription_id, invoice_id=event.data.object.id)

    def handle_invoice_payment_failed(self, event: InvoicePaymentFailed) -> None:
        """Apply the subscription's status after a failed renewal payment."""
        invoice = event.data.object
        logger.warning("stripe_invoice_payment_failed", invoice_id=invoice.id, subscription_id=invoice.subscription_id)
        self._sync_invoice_subscription(invoice.subscription_id, invoice_id=invoice.id)

    def _sync_invoice_subscription(self, subscription_id: str | None, invoice_id: str) -> None:
        if not subscription_id:
            logger.info("stripe_invoice_without_subscription", invoice_id=invoice_id)
            return
        subscription = stripe.Subscription.retrieve(subscription_id)
        updated = _sync_memberships_for_subscription(
            subscription_id, subscription.get("status"), _subscription_period_end(subscription)
        )
        if not updated:
            logger.info("stripe_invoice_unknown_subscription", invoice_id=invoice_id, subscription_id=subscription_id)

    def _current_subscription(self, payload: SubscriptionObject) -> t.Mapping[str, t.Any]:
        """Fetch the subscription's present state, falling back to the event snapshot."""
        try:
            return t.cast(t.Mapping[str, t.Any], stripe.Subscription.retrieve(payload.id))
        except stripe.error.InvalidRequestError:
            logger.info("stripe_subscription_retrieve_missing", subscription_id=payload.id)
            return payload.model_dump()

    def _apply_event_payment(self, session: CheckoutSessionObject) -> None:
        if session.payment_status not in PAID_SESSION_STATUSES:
            logger.info("stripe_session_not_paid", session_id=session.id, payment_status=session.payment_status)
            return
        user_id = session.metadata.user_id
        if not user_id:
            logger.warning("stripe_session_missing_metadata", session_id=session.id)
            return
        confirm_event_payment(
            event_id=t.cast(uuid.UUID, session.metadata.event_id),
            user_id=user_id,
            session_id=session.id,
            payment_intent_id=session.payment_intent,
            amount_cents=session.amount_total,
        )

    def _activate_membership(self, session: CheckoutSessionObject) -> None:
        club_id, user_id = session.metadata.club_id, session.metadata.user_id
        if not club_id or not user_id:
            logger.warning("stripe_session_missing_metadata", session_id=session.id)
            return

        # A paid checkout grants access unless Stripe reports the subscription as already ended.
        status, period_end = Membership.MembershipStatus.ACTIVE, None
        if session.subscription:
            subscription = stripe.Subscription.retrieve(session.subscription)
            status = membership_status_for(subscription.get("status"))
            period_end = _subscription_period_end(subscription)
        upsert_membership(
            user_id,
            club_id,
            status=status,
            stripe_subscription_id=session.subscription,
            current_period_end=period_end,
        )


# Success redirects: the browser returns before, or instead of, the webhook. Both paths apply
# the same idempotent updates.


def _frontend_url(path: str) -> str:
    return f"{settings.FRONTEND_BASE_URL}{path}"


def reconcile_event_checkout(session_id: str) -> str:
    """Apply a completed event checkout and return the frontend URL to send the user to."""
    try:
        raw_session = Session.retrieve(session_id, expand=["payment_intent"])
    except stripe.error.StripeError:
        logger.exception("stripe_checkout_session_retrieve_failed", session_id=session_id)
        return _frontend_url("/clubs?error=checkout_failed")

    session = CheckoutSessionObject.model_validate(raw_session)
    event_id, club_id, user_id = session.metadata.event_id, session.metadata.club_id, session.metadata.user_id
    if not event_id or not club_id or not user_id:
        logger.warning("stripe_session_missing_metadata", session_id=session_id)
        return _frontend_url("/clubs?error=invalid_session")

    event_url = f"/clubs/{club_id}?eventId={event_id}"
    payment_intent = raw_session.get("payment_intent")
    intent_succeeded = isinstance(payment_intent, t.Mapping) and payment_intent.get("status") == "succeeded"
    if session.payment_status != "paid" and not intent_succeeded:
        return _frontend_url(f"{event_url}&eventPayment=processing")

    amount = session.amount_total
    if amount is None and isinstance(payment_intent, t.Mapping):
        amount = payment_intent.get("amount_received")

    with transaction.atomic():
        confirmation = confirm_event_payment(
            event_id=event_id,
            user_id=user_id,
            session_id=session.id,
            payment_intent_id=session.payment_intent,
            amount_cents=amount,
        )
    if confirmation in (PaymentConfirmation.MISSING, PaymentConfirmation.NOT_PAYABLE):
        return _frontend_url(f"{event_url}&eventPayment=missing_rsvp")
    return _frontend_url(f"{event_url}&eventPayment=success")


def reconcile_membership_checkout(session_id: str) -> str:
    """Activate the membership of a completed subscription checkout and return the redirect URL."""
    try:
        raw_session = Session.retrieve(session_id, expand=["subscription"])
    except stripe.error.StripeError:
        logger.exception("stripe_checkout_session_retrieve_failed", session_id=session_id)
        return _frontend_url("/clubs?error=checkout_failed")

    session = CheckoutSessionObject.model_validate(raw_session)
    club_id, user_id = session.metadata.club_id, session.metadata.user_id
    if not club_id or not user_id:
        logger.warning("stripe_session_missing_metadata", session_id=session_id)
        return _frontend_url("/clubs?error=invalid_session")
    if session.payment_status not in PAID_SESSION_STATUSES:
        return _frontend_url(f"/clubs/{club_id}?membership=processing")

    status, period_end = Membership.MembershipStatus.ACTIVE, None
    subscription = raw_session.get("subscription")
    if isinstance(subscription, t.Mapping):
        status = membership_status_for(subscription.get("status"))
        period_end = _subscription_period_end(subscription)
    with transaction.atomic():
        membership = upsert_membership(
            user_id,
            club_id,
            status=status,
            stripe_subscription_id=session.subscription,
            current_period_end=period_end,
        )
    if membership is None:
        return _frontend_url("/clubs?error=invalid_session")
    if membership.status != Membership.MembershipStatus.ACTIVE:
        logger.warning("membership_checkout_subscription_inactive", session_id=session_id, club_id=str(club_id))
        return _frontend_url(f"/clubs/{club_id}?membership=inactive")
    return _frontend_url(f"/clubs/{club_id}?joined=true")
