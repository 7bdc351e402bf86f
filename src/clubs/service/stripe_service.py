"""Payment session orchestration: Stripe products, prices, customers and checkout sessions."""

import typing as t
from decimal import ROUND_HALF_UP, Decimal

import stripe
import structlog
from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import transaction
from django.http import HttpRequest
from django.utils.translation import gettext as _
from ninja.errors import HttpError
from stripe.checkout import Session

from accounts.models import ClubUser
from clubs.exceptions import (
    AlreadyConfirmedError,
    AlreadyMemberError,
    PaymentNotConfiguredError,
    PaymentProviderError,
    PriceLockedError,
    RegistrationNotPayableError,
)
from clubs.models import Club, Event, EventRSVP, Membership
from common.audit import log_audit_event

from .registration.transitions import PAYABLE_STATUSES
from .stripe_webhooks import PAID_SESSION_STATUSES, confirm_event_payment

logger = structlog.get_logger(__name__)

stripe.api_key = settings.STRIPE_SECRET_KEY


def calculate_platform_fee(gross_cents: int, fee_percent: Decimal | None = None) -> int:
    """Platform fee in cents, rounded half-up."""
    fee_percent = settings.PLATFORM_FEE_PERCENT if fee_percent is None else fee_percent
    fee = Decimal(gross_cents) * Decimal(fee_percent) / Decimal(100)
    return int(fee.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def charges_platform_fee(organizer: ClubUser) -> bool:
    """False when the organizer collects through the platform's own account."""
    return bool(settings.STRIPE_ACCOUNT != organizer.stripe_connect_account_id)


def assert_accepts_payments(organizer: ClubUser) -> None:
    if not organizer.accepts_payments:
        raise PaymentNotConfiguredError()


def validate_price(price_cents: int, field: str = "price_cents") -> None:
    """Reject prices below the configured floor."""
    if price_cents < settings.MIN_PRICE_CENTS:
        raise ValidationError(
            {field: [_("The minimum price is %(minimum)s cents.") % {"minimum": settings.MIN_PRICE_CENTS}]}
        )


# Stripe Connect


def create_connect_account(user: ClubUser) -> str:
    """Create an Express connected account for an organizer, once."""
    if user.stripe_connect_account_id:
        return user.stripe_connect_account_id
    try:
        account = stripe.Account.create(
            type="express",
            country=settings.STRIPE_CONNECT_COUNTRY,
            email=user.email or None,
            capabilities={"card_payments": {"requested": True}, "transfers": {"requested": True}},
            metadata={"user_id": str(user.id)},
        )
    except stripe.error.StripeError as e:
        logger.exception("stripe_connect_account_create_failed", user_id=str(user.id))
        raise PaymentProviderError() from e
    user.stripe_connect_account_id = account.id
    user.save(update_fields=["stripe_connect_account_id"])
    logger.info("stripe_connect_account_created", user_id=str(user.id), account_id=account.id)
    return t.cast(str, account.id)


def create_account_link(user: ClubUser) -> str:
    """Create a one-time onboarding link for the organizer's connected account."""
    account_id = create_connect_account(user)
    try:
        account_link = stripe.AccountLink.create(
            account=account_id,
            refresh_url=f"{settings.FRONTEND_BASE_URL}/settings/payments?stripe_refresh=true",
            return_url=f"{settings.FRONTEND_BASE_URL}/settings/payments?stripe_success=true",
            type="account_onboarding",
        )
    except stripe.error.StripeError as e:
        logger.exception("stripe_account_link_create_failed", user_id=str(user.id), account_id=account_id)
        raise PaymentProviderError() from e
    return t.cast(str, account_link.url)


def sync_connect_status(user: ClubUser) -> ClubUser:
    """Refresh the organizer's charge and onboarding flags from Stripe."""
    if user.stripe_connect_account_id is None:
        raise HttpError(400, str(_("You must connect your Stripe account first.")))
    try:
        account = stripe.Account.retrieve(user.stripe_connect_account_id)
    except stripe.error.StripeError as e:
        logger.exception("stripe_account_retrieve_failed", user_id=str(user.id))
        raise PaymentProviderError() from e
    user.stripe_connect_charges_enabled = bool(account.charges_enabled)
    user.stripe_connect_details_submitted = bool(account.details_submitted)
    user.save(update_fields=["stripe_connect_charges_enabled", "stripe_connect_details_submitted"])
    return user


def create_dashboard_link(user: ClubUser) -> str:
    """Create a login link to the organizer's Express dashboard."""
    if user.stripe_connect_account_id is None:
        raise HttpError(400, str(_("You must connect your Stripe account first.")))
    if not user.accepts_payments:
        raise HttpError(400, str(_("Finish setting up your Stripe account first.")))
    try:
        login_link = stripe.Account.create_login_link(user.stripe_connect_account_id)
    except stripe.error.StripeError as e:
        logger.exception("stripe_login_link_create_failed", user_id=str(user.id))
        raise PaymentProviderError() from e
    return t.cast(str, login_link.url)


# Customers


def get_or_create_customer(user: ClubUser) -> str:
    """Return the user's Stripe customer id, creating the customer if needed.

    A stored id that Stripe no longer knows is replaced.
    """
    if user.stripe_customer_id:
        try:
            stripe.Customer.retrieve(user.stripe_customer_id)
            return user.stripe_customer_id
        except stripe.error.InvalidRequestError:
            logger.warning("stripe_customer_missing", user_id=str(user.id), customer_id=user.stripe_customer_id)

    customer = stripe.Customer.create(
        email=user.email or None,
        name=user.get_display_name(),
        metadata={"user_id": str(user.id)},
    )
    user.stripe_customer_id = customer.id
    user.save(update_fields=["stripe_customer_id"])
    return t.cast(str, customer.id)


def create_billing_portal_session(club: Club, user: ClubUser) -> str:
    """Open the Stripe billing portal so a member can manage their club subscription."""
    membership = Membership.objects.filter(club=club, user=user).first()
    if membership is None:
        raise HttpError(404, str(_("You are not a member of this club.")))
    if not membership.stripe_subscription_id:
        raise HttpError(400, str(_("This membership has no subscription.")))
    try:
        customer_id = get_or_create_customer(user)
        portal_session = stripe.billing_portal.Session.create(
            customer=customer_id,
            return_url=f"{settings.FRONTEND_BASE_URL}/clubs/{club.id}",
        )
    except stripe.error.StripeError as e:
        logger.exception("stripe_billing_portal_create_failed", user_id=str(user.id), club_id=str(club.id))
        raise PaymentProviderError() from e
    return t.cast(str, portal_session.url)


# Event pricing


def _create_event_price(product_id: str, price_cents: int) -> str:
    price = stripe.Price.create(
        product=product_id,
        unit_amount=price_cents,
        currency=settings.DEFAULT_CURRENCY,
    )
    return t.cast(str, price.id)


@transaction.atomic
def ensure_product_and_price(event: Event) -> str:
    """Return the event's Stripe price id, creating product and price on first use.

    Runs under the event lock so concurrent checkouts create a single price.
    """
    if event.stripe_price_id:
        return event.stripe_price_id
    if not event.is_paid:
        raise HttpError(400, str(_("This event is free.")))

    locked = Event.objects.select_for_update().get(pk=event.pk)
    if locked.stripe_price_id:
        event.stripe_product_id, event.stripe_price_id = locked.stripe_product_id, locked.stripe_price_id
        return locked.stripe_price_id

    try:
        if not locked.stripe_product_id:
            product = stripe.Product.create(
                name=locked.title,
                metadata={"event_id": str(locked.id), "club_id": str(locked.club_id)},
            )
            locked.stripe_product_id = product.id
        locked.stripe_price_id = _create_event_price(
            t.cast(str, locked.stripe_product_id), t.cast(int, locked.price_cents)
        )
    except stripe.error.StripeError as e:
        logger.exception("stripe_event_price_create_failed", event_id=str(locked.id))
        raise PaymentProviderError() from e

    locked.save(update_fields=["stripe_product_id", "stripe_price_id", "updated_at"])
    event.stripe_product_id, event.stripe_price_id = locked.stripe_product_id, locked.stripe_price_id
    logger.info("stripe_event_price_created", event_id=str(locked.id), price_id=locked.stripe_price_id)
    return t.cast(str, locked.stripe_price_id)


@transaction.atomic
def set_event_price(
    event: Event, price_cents: int | None, actor: ClubUser, request: HttpRequest | None = None
) -> Event:
    """Set or clear an event's price.

    Forbidden once anyone is confirmed. The previous Stripe price is archived; a paid price
    creates a new one under the same product and clearing the price makes the event free.
    """
    locked = Event.objects.select_for_update().select_related("club__organizer").get(pk=event.pk)
    if EventRSVP.objects.filter(event=locked, status=EventRSVP.RsvpStatus.GOING).exists():
        raise PriceLockedError()

    previous_price = locked.price_cents
    if not price_cents:
        if locked.stripe_price_id:
            try:
                stripe.Price.modify(locked.stripe_price_id, active=False)
            except stripe.error.StripeError as e:
                logger.exception("stripe_event_price_archive_failed", event_id=str(locked.id))
                raise PaymentProviderError() from e
        locked.price_cents = None
        locked.stripe_price_id = None
    else:
        validate_price(price_cents)
        assert_accepts_payments(locked.club.organizer)
        try:
            if locked.stripe_price_id:
                stripe.Price.modify(locked.stripe_price_id, active=False)
            if not locked.stripe_product_id:
                product = stripe.Product.create(
                    name=locked.title,
                    metadata={"event_id": str(locked.id), "club_id": str(locked.club_id)},
                )
                locked.stripe_product_id = product.id
            locked.stripe_price_id = _create_event_price(locked.stripe_product_id, price_cents)
        except stripe.error.StripeError as e:
            logger.exception("stripe_event_price_update_failed", event_id=str(locked.id))
            raise PaymentProviderError() from e
        locked.price_cents = price_cents

    locked.save(update_fields=["price_cents", "stripe_product_id", "stripe_price_id", "updated_at"])
    log_audit_event(
        actor=actor,
        action="event.pricing_update",
        target_type="event",
        target_id=locked.pk,
        metadata={"club_id": str(locked.club_id), "previous_price_cents": previous_price, "price_cents": price_cents},
        request=request,
    )
    return locked


# Club membership pricing


@transaction.atomic
def set_club_price(club: Club, price_cents: int, actor: ClubUser, request: HttpRequest | None = None) -> Club:
    """Set the monthly membership price of a club.

    Creates the Stripe product on first use; a new recurring price replaces, and archives,
    the previous one.
    """
    validate_price(price_cents)
    locked = Club.objects.select_for_update().select_related("organizer").get(pk=club.pk)
    assert_accepts_payments(locked.organizer)

    previous_price = locked.membership_price_cents
    try:
        if not locked.stripe_product_id:
            product = stripe.Product.create(
                name=_("Membership - %(name)s") % {"name": locked.name},
                metadata={"club_id": str(locked.id)},
            )
            locked.stripe_product_id = product.id
        elif locked.stripe_price_id:
            stripe.Price.modify(locked.stripe_price_id, active=False)
        price = stripe.Price.create(
            product=locked.stripe_product_id,
            unit_amount=price_cents,
            currency=settings.DEFAULT_CURRENCY,
            recurring={"interval": "month"},
        )
    except stripe.error.StripeError as e:
        logger.exception("stripe_club_price_update_failed", club_id=str(locked.id))
        raise PaymentProviderError() from e

    locked.stripe_price_id = price.id
    locked.membership_price_cents = price_cents
    locked.save(update_fields=["stripe_product_id", "stripe_price_id", "membership_price_cents", "updated_at"])
    log_audit_event(
        actor=actor,
        action="club.pricing_update",
        target_type="club",
        target_id=locked.pk,
        metadata={"previous_price_cents": previous_price, "price_cents": price_cents},
        request=request,
    )
    return locked


# Checkout sessions


def _create_session(**session_data: t.Any) -> Session:
    try:
        return Session.create(**session_data)
    except stripe.error.StripeError as e:
        logger.exception("stripe_checkout_session_create_failed", metadata=session_data.get("metadata"))
        raise PaymentProviderError() from e


def _resume_event_checkout(rsvp: EventRSVP, price_cents: int) -> str | None:
    """URL of the registration's stored checkout session while it can still be paid.

    An open session for a different amount is expired. A session that was already paid is
    confirmed here and the user is sent back to the event instead of to a second checkout.
    """
    session_id = t.cast(str, rsvp.stripe_checkout_session_id)
    try:
        session = Session.retrieve(session_id)
        if session.get("status") == "open":
            if session.get("amount_total") == price_cents:
                return t.cast(str, session.get("url"))
            Session.expire(session_id)
            logger.info("stripe_event_checkout_expired", session_id=session_id, rsvp_id=str(rsvp.pk))
            return None
    except stripe.error.InvalidRequestError:
        logger.warning("stripe_checkout_session_missing", session_id=session_id, rsvp_id=str(rsvp.pk))
        return None
    except stripe.error.StripeError as e:
        logger.exception("stripe_checkout_session_retrieve_failed", session_id=session_id)
        raise PaymentProviderError() from e

    if session.get("status") == "complete":
        if session.get("payment_status") not in PAID_SESSION_STATUSES:
            raise RegistrationNotPayableError(_("Your payment for this event is still being processed."))
        confirm_event_payment(
            event_id=rsvp.event_id,
            user_id=rsvp.user_id,
            session_id=session_id,
            payment_intent_id=session.get("payment_intent"),
            amount_cents=session.get("amount_total"),
        )
        logger.info("stripe_event_checkout_already_paid", session_id=session_id, rsvp_id=str(rsvp.pk))
        return f"{settings.FRONTEND_BASE_URL}/clubs/{rsvp.event.club_id}?eventId={rsvp.event_id}&eventPayment=success"
    return None


@transaction.atomic
def create_event_checkout_session(event: Event, user: ClubUser) -> str:
    """Create a Stripe Checkout Session for a registration awaiting payment.

    A session that is still open is handed out again, so one registration never has two
    payable sessions. Only the session id is recorded on the registration; its status
    changes when Stripe reports the outcome.

    Returns:
        The checkout URL to redirect the user to.
    """
    if not event.is_paid:
        raise HttpError(400, str(_("This event is free.")))

    rsvp = EventRSVP.objects.select_for_update().filter(event=event, user=user).first()
    if rsvp is None:
        raise RegistrationNotPayableError(_("You must RSVP before paying for this event."))
    if rsvp.status == EventRSVP.RsvpStatus.GOING:
        raise AlreadyConfirmedError()
    if rsvp.status not in PAYABLE_STATUSES:
        raise RegistrationNotPayableError()

    organizer = event.club.organizer
    assert_accepts_payments(organizer)

    if rsvp.stripe_checkout_session_id:
        resume_url = _resume_event_checkout(rsvp, t.cast(int, event.price_cents))
        if resume_url:
            return resume_url

    price_id = ensure_product_and_price(event)
    try:
        customer_id = get_or_create_customer(user)
    except stripe.error.StripeError as e:
        logger.exception("stripe_customer_create_failed", user_id=str(user.id))
        raise PaymentProviderError() from e

    metadata = {"event_id": str(event.id), "club_id": str(event.club_id), "user_id": str(user.id)}
    payment_intent_data: dict[str, t.Any] = {"metadata": metadata}
    if charges_platform_fee(organizer):
        payment_intent_data["application_fee_amount"] = calculate_platform_fee(t.cast(int, event.price_cents))
        payment_intent_data["transfer_data"] = {"destination": organizer.stripe_connect_account_id}

    session = _create_session(
        customer=customer_id,
        mode="payment",
        line_items=[{"price": price_id, "quantity": 1}],
        success_url=f"{settings.SERVICE_URL}/api/stripe/events/checkout/success?session_id={{CHECKOUT_SESSION_ID}}",
        cancel_url=f"{settings.FRONTEND_BASE_URL}/clubs/{event.club_id}?eventId={event.id}&eventPayment=cancelled",
        metadata=metadata,
        payment_intent_data=payment_intent_data,
    )

    rsvp.stripe_checkout_session_id = session.id
    rsvp.save(update_fields=["stripe_checkout_session_id", "updated_at"])
    logger.info("stripe_event_checkout_created", event_id=str(event.id), user_id=str(user.id), session_id=session.id)
    return t.cast(str, session.url)


def create_membership_checkout_session(club: Club, user: ClubUser) -> str:
    """Create a subscription Checkout Session for joining a paid club."""
    if Membership.is_active_member(user.pk, club.pk):
        raise AlreadyMemberError()
    if not club.stripe_price_id:
        raise HttpError(400, str(_("This club has no membership price.")))

    organizer = club.organizer
    assert_accepts_payments(organizer)
    try:
        customer_id = get_or_create_customer(user)
    except stripe.error.StripeError as e:
        logger.exception("stripe_customer_create_failed", user_id=str(user.id))
        raise PaymentProviderError() from e

    metadata = {"club_id": str(club.id), "user_id": str(user.id)}
    subscription_data: dict[str, t.Any] = {"metadata": metadata}
    if charges_platform_fee(organizer):
        subscription_data["application_fee_percent"] = float(settings.PLATFORM_FEE_PERCENT)
        subscription_data["transfer_data"] = {"destination": organizer.stripe_connect_account_id}

    session = _create_session(
        customer=customer_id,
        mode="subscription",
        line_items=[{"price": club.stripe_price_id, "quantity": 1}],
        success_url=f"{settings.SERVICE_URL}/api/stripe/checkout/success?session_id={{CHECKOUT_SESSION_ID}}",
        cancel_url=f"{settings.FRONTEND_BASE_URL}/clubs/{club.id}?membership=cancelled",
        metadata=metadata,
        subscription_data=subscription_data,
    )
    logger.info("stripe_membership_checkout_created", club_id=str(club.id), user_id=str(user.id), session_id=session.id)
    return t.cast(str, session.url)
