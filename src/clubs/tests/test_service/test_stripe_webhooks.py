import typing as t
from datetime import UTC, datetime
from unittest.mock import MagicMock, patch

import pydantic
import pytest
import stripe

from accounts.models import ClubUser
from clubs.models import Club, Event, EventRSVP, Membership
from clubs.schema.stripe_events import (
    CheckoutSessionCompleted,
    InvoicePaid,
    SubscriptionDeleted,
    SubscriptionUpdated,
    UnhandledStripeEvent,
    parse_stripe_event,
)
from clubs.service import stripe_webhooks
from clubs.service.registration.enums import PaymentConfirmation
from clubs.service.stripe_webhooks import StripeEventHandler

pytestmark = pytest.mark.django_db

Status = EventRSVP.RsvpStatus

PERIOD_END = 1_900_000_000


def checkout_completed_payload(
    metadata: dict[str, str], mode: str = "payment", subscription: str | None = None, **session: t.Any
) -> dict[str, t.Any]:
    return {
        "id": "evt_checkout",
        "type": "checkout.session.completed",
        "data": {
            "object": {
                "id": "cs_test_123",
                "object": "checkout.session",
                "mode": mode,
                "payment_status": "paid",
                "payment_intent": "pi_123" if mode == "payment" else None,
                "subscription": subscription,
                "amount_total": 1500,
                "metadata": metadata,
                **session,
            }
        },
    }


def subscription_payload(event_type: str, status: str = "active", **metadata: str) -> dict[str, t.Any]:
    return {
        "id": "evt_subscription",
        "type": event_type,
        "data": {
            "object": {
                "id": "sub_123",
                "object": "subscription",
                "status": status,
                "current_period_end": PERIOD_END,
                "metadata": metadata,
            }
        },
    }


def handle(payload: dict[str, t.Any]) -> stripe_webhooks.WebhookOutcome:
    return StripeEventHandler(parse_stripe_event(payload)).handle()


class TestParseStripeEvent:
    def test_checkout_variant(self, paid_event: Event, member_user: ClubUser) -> None:
        event = parse_stripe_event(
            checkout_completed_payload({"event_id": str(paid_event.id), "user_id": str(member_user.id)})
        )

        assert isinstance(event, CheckoutSessionCompleted)
        assert event.data.object.metadata.event_id == paid_event.id
        assert event.handler == "handle_checkout_session_completed"

    def test_async_success_shares_the_completed_variant(self) -> None:
        payload = checkout_completed_payload({})
        payload["type"] = "checkout.session.async_payment_succeeded"

        assert isinstance(parse_stripe_event(payload), CheckoutSessionCompleted)

    def test_unhandled_type_falls_back(self) -> None:
        event = parse_stripe_event({"id": "evt_1", "type": "charge.refunded", "data": {"object": {}}})

        assert isinstance(event, UnhandledStripeEvent)

    def test_garbage_metadata_is_treated_as_absent(self) -> None:
        event = parse_stripe_event(checkout_completed_payload({"event_id": "not-a-uuid"}))

        assert isinstance(event, CheckoutSessionCompleted)
        assert event.data.object.metadata.event_id is None

    def test_expanded_ids_are_flattened(self) -> None:
        event = parse_stripe_event(checkout_completed_payload({}, payment_intent={"id": "pi_expanded"}))

        assert isinstance(event, CheckoutSessionCompleted)
        assert event.data.object.payment_intent == "pi_expanded"

    def test_invoice_subscription_from_parent(self) -> None:
        event = parse_stripe_event(
            {
                "id": "evt_invoice",
                "type": "invoice.paid",
                "data": {
                    "object": {
                        "id": "in_123",
                        "parent": {"subscription_details": {"subscription": "sub_123"}},
                    }
                },
            }
        )

        assert isinstance(event, InvoicePaid)
        assert event.data.object.subscription_id == "sub_123"

    def test_malformed_handled_event(self) -> None:
        with pytest.raises(pydantic.ValidationError):
            parse_stripe_event({"id": "evt_1", "type": "customer.subscription.deleted", "data": {}})


class TestConfirmEventPayment:
    def test_replay_is_idempotent(
        self, paid_event: Event, member_user: ClubUser, make_rsvp: t.Callable[..., EventRSVP]
    ) -> None:
        # Arrange
        rsvp = make_rsvp(paid_event, member_user, Status.PENDING_PAYMENT, stripe_checkout_session_id="cs_1")
        kwargs: dict[str, t.Any] = {
            "event_id": paid_event.id,
            "user_id": member_user.id,
            "session_id": "cs_1",
            "payment_intent_id": "pi_1",
            "amount_cents": 1500,
        }

        # Act
        first = stripe_webhooks.confirm_event_payment(**kwargs)
        rsvp.refresh_from_db()
        paid_at = rsvp.paid_at
        second = stripe_webhooks.confirm_event_payment(**{**kwargs, "amount_cents": 9999})

        # Assert
        assert first == PaymentConfirmation.CONFIRMED
        assert second == PaymentConfirmation.ALREADY_CONFIRMED
        rsvp.refresh_from_db()
        assert rsvp.status == Status.GOING
        assert rsvp.paid_amount_cents == 1500
        assert rsvp.paid_at == paid_at
        assert EventRSVP.objects.filter(event=paid_event, user=member_user).count() == 1

    def test_missing_registration(self, paid_event: Event, member_user: ClubUser) -> None:
        result = stripe_webhooks.confirm_event_payment(
            event_id=paid_event.id, user_id=member_user.id, session_id="cs_1", payment_intent_id=None, amount_cents=1
        )

        assert result == PaymentConfirmation.MISSING
        assert not EventRSVP.objects.exists()

    def test_withdrawn_registration_is_not_confirmed(
        self, paid_event: Event, member_user: ClubUser, make_rsvp: t.Callable[..., EventRSVP]
    ) -> None:
        make_rsvp(paid_event, member_user, Status.NOT_GOING)

        result = stripe_webhooks.confirm_event_payment(
            event_id=paid_event.id, user_id=member_user.id, session_id="cs_1", payment_intent_id=None, amount_cents=1
        )

        assert result == PaymentConfirmation.NOT_PAYABLE
        assert EventRSVP.objects.get(event=paid_event, user=member_user).status == Status.NOT_GOING

    def test_session_other_than_the_current_one_does_not_confirm(
        self, paid_event: Event, member_user: ClubUser, make_rsvp: t.Callable[..., EventRSVP]
    ) -> None:
        make_rsvp(paid_event, member_user, Status.PENDING_PAYMENT, stripe_checkout_session_id="cs_current")

        result = stripe_webhooks.confirm_event_payment(
            event_id=paid_event.id,
            user_id=member_user.id,
            session_id="cs_old",
            payment_intent_id="pi_old",
            amount_cents=1500,
        )

        assert result == PaymentConfirmation.NOT_PAYABLE
        rsvp = EventRSVP.objects.get(event=paid_event, user=member_user)
        assert rsvp.status == Status.PENDING_PAYMENT
        assert rsvp.paid_at is None
        assert rsvp.stripe_checkout_session_id == "cs_current"


class TestCheckoutSessionCompleted:
    def test_approved_registration_is_confirmed(
        self,
        paid_approval_event: Event,
        member_user: ClubUser,
        make_rsvp: t.Callable[..., EventRSVP],
    ) -> None:
        make_rsvp(
            paid_approval_event, member_user, Status.APPROVED_PENDING_PAYMENT, stripe_checkout_session_id="cs_test_123"
        )
        payload = checkout_completed_payload(
            {
                "event_id": str(paid_approval_event.id),
                "club_id": str(paid_approval_event.club_id),
                "user_id": str(member_user.id),
            }
        )

        outcome = handle(payload)

        assert outcome.processed is True
        rsvp = EventRSVP.objects.get(event=paid_approval_event, user=member_user)
        assert rsvp.status == Status.GOING
        assert rsvp.paid_at is not None
        assert rsvp.paid_amount_cents == 1500
        assert rsvp.stripe_payment_intent_id == "pi_123"

    def test_replayed_delivery_does_not_reapply(
        self,
        paid_event: Event,
        member_user: ClubUser,
        make_rsvp: t.Callable[..., EventRSVP],
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        make_rsvp(paid_event, member_user, Status.PENDING_PAYMENT, stripe_checkout_session_id="cs_test_123")
        payload = checkout_completed_payload({"event_id": str(paid_event.id), "user_id": str(member_user.id)})

        assert handle(payload).processed is True
        with caplog.at_level("INFO"):
            assert handle(payload).processed is True

        assert "stripe_webhook_duplicate_payment_success" in caplog.text
        assert EventRSVP.objects.get(event=paid_event, user=member_user).status == Status.GOING

    def test_unpaid_session_is_ignored(
        self, paid_event: Event, member_user: ClubUser, make_rsvp: t.Callable[..., EventRSVP]
    ) -> None:
        make_rsvp(paid_event, member_user, Status.PENDING_PAYMENT)
        payload = checkout_completed_payload(
            {"event_id": str(paid_event.id), "user_id": str(member_user.id)}, payment_status="unpaid"
        )

        assert handle(payload).processed is True
        assert EventRSVP.objects.get(event=paid_event, user=member_user).status == Status.PENDING_PAYMENT

    def test_missing_metadata_is_dropped(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level("WARNING"):
            outcome = handle(checkout_completed_payload({}))

        assert outcome.processed is True
        assert "stripe_session_missing_metadata" in caplog.text

    @patch("stripe.Subscription.retrieve")
    def test_subscription_checkout_activates_membership(
        self, mock_retrieve: MagicMock, paid_club: Club, member_user: ClubUser
    ) -> None:
        mock_retrieve.return_value = {"id": "sub_123", "status": "active", "current_period_end": PERIOD_END}
        payload = checkout_completed_payload(
            {"club_id": str(paid_club.id), "user_id": str(member_user.id)}, mode="subscription", subscription="sub_123"
        )

        assert handle(payload).processed is True
        assert handle(payload).processed is True

        membership = Membership.objects.get(club=paid_club, user=member_user)
        assert membership.status == Membership.MembershipStatus.ACTIVE
        assert membership.stripe_subscription_id == "sub_123"
        assert membership.current_period_end == datetime.fromtimestamp(PERIOD_END, tz=UTC)

    @patch("stripe.Subscription.retrieve")
    def test_completion_after_deletion_keeps_membership_inactive(
        self, mock_retrieve: MagicMock, paid_club: Club, member_user: ClubUser
    ) -> None:
        """A late checkout completion does not revive a subscription Stripe already ended."""
        # Arrange
        mock_retrieve.return_value = {"id": "sub_123", "status": "canceled", "current_period_end": PERIOD_END}
        payload = checkout_completed_payload(
            {"club_id": str(paid_club.id), "user_id": str(member_user.id)}, mode="subscription", subscription="sub_123"
        )

        # Act
        assert handle(subscription_payload("customer.subscription.deleted", status="canceled")).processed is True
        assert handle(payload).processed is True

        # Assert
        membership = Membership.objects.get(club=paid_club, user=member_user)
        assert membership.status == Membership.MembershipStatus.INACTIVE
        assert membership.stripe_subscription_id == "sub_123"


class TestCheckoutSessionPaymentFailed:
    def _payload(self, event: Event, user: ClubUser) -> dict[str, t.Any]:
        payload = checkout_completed_payload({"event_id": str(event.id), "user_id": str(user.id)})
        payload["type"] = "checkout.session.async_payment_failed"
        return payload

    def test_releases_seat(
        self, single_seat_event: Event, member_user: ClubUser, make_rsvp: t.Callable[..., EventRSVP]
    ) -> None:
        make_rsvp(
            single_seat_event, member_user, Status.PENDING_PAYMENT, stripe_checkout_session_id="cs_test_123"
        )

        assert handle(self._payload(single_seat_event, member_user)).processed is True

        rsvp = EventRSVP.objects.get(event=single_seat_event, user=member_user)
        assert rsvp.status == Status.PAYMENT_FAILED

    def test_keeps_approval(
        self, paid_approval_event: Event, member_user: ClubUser, make_rsvp: t.Callable[..., EventRSVP]
    ) -> None:
        make_rsvp(paid_approval_event, member_user, Status.APPROVED_PENDING_PAYMENT)

        handle(self._payload(paid_approval_event, member_user))

        rsvp = EventRSVP.objects.get(event=paid_approval_event, user=member_user)
        assert rsvp.status == Status.APPROVED_PENDING_PAYMENT


class TestSubscriptionEvents:
    def test_deleted_for_unknown_subscription_is_a_no_op(
        self, paid_club: Club, member_user: ClubUser, caplog: pytest.LogCaptureFixture
    ) -> None:
        """A deletion for a subscription nothing references is logged and acknowledged."""
        # Arrange
        Membership.objects.create(club=paid_club, user=member_user, stripe_subscription_id="sub_other")
        event = parse_stripe_event(subscription_payload("customer.subscription.deleted", status="canceled"))

        # Act
        with caplog.at_level("INFO"):
            outcome = StripeEventHandler(event).handle()

        # Assert
        assert isinstance(event, SubscriptionDeleted)
        assert outcome.processed is True
        assert "stripe_subscription_deleted_unknown" in caplog.text
        membership = Membership.objects.get(club=paid_club, user=member_user)
        assert membership.status == Membership.MembershipStatus.ACTIVE

    def test_deleted_deactivates_membership(self, paid_club: Club, member_user: ClubUser) -> None:
        Membership.objects.create(club=paid_club, user=member_user, stripe_subscription_id="sub_123")

        handle(subscription_payload("customer.subscription.deleted", status="canceled"))

        membership = Membership.objects.get(club=paid_club, user=member_user)
        assert membership.status == Membership.MembershipStatus.INACTIVE

    @patch("stripe.Subscription.retrieve")
    def test_updated_uses_current_provider_status(
        self, mock_retrieve: MagicMock, paid_club: Club, member_user: ClubUser
    ) -> None:
        """An out-of-order "active" update does not revive a subscription Stripe reports as canceled."""
        Membership.objects.create(
            club=paid_club,
            user=member_user,
            stripe_subscription_id="sub_123",
            status=Membership.MembershipStatus.INACTIVE,
        )
        mock_retrieve.return_value = {"id": "sub_123", "status": "canceled", "current_period_end": PERIOD_END}

        event = parse_stripe_event(subscription_payload("customer.subscription.updated", status="active"))
        assert isinstance(event, SubscriptionUpdated)
        StripeEventHandler(event).handle()

        membership = Membership.objects.get(club=paid_club, user=member_user)
        assert membership.status == Membership.MembershipStatus.INACTIVE

    @patch("stripe.Subscription.retrieve")
    def test_updated_falls_back_to_payload(
        self, mock_retrieve: MagicMock, paid_club: Club, member_user: ClubUser
    ) -> None:
        mock_retrieve.side_effect = stripe.error.InvalidRequestError("No such subscription", "id")

        handle(
            subscription_payload(
                "customer.subscription.created", club_id=str(paid_club.id), user_id=str(member_user.id)
            )
        )

        membership = Membership.objects.get(club=paid_club, user=member_user)
        assert membership.status == Membership.MembershipStatus.ACTIVE
        assert membership.stripe_subscription_id == "sub_123"

    @patch("stripe.Subscription.retrieve")
    def test_updated_for_deleted_club_is_dropped(self, mock_retrieve: MagicMock, member_user: ClubUser) -> None:
        mock_retrieve.return_value = {"id": "sub_123", "status": "active"}

        outcome = handle(
            subscription_payload(
                "customer.subscription.updated",
                club_id="00000000-0000-0000-0000-000000000000",
                user_id=str(member_user.id),
            )
        )

        assert outcome.processed is True
        assert not Membership.objects.exists()


class TestInvoiceEvents:
    @patch("stripe.Subscription.retrieve")
    def test_paid_invoice_extends_period(
        self, mock_retrieve: MagicMock, paid_club: Club, member_user: ClubUser
    ) -> None:
        Membership.objects.create(club=paid_club, user=member_user, stripe_subscription_id="sub_123")
        mock_retrieve.return_value = {
            "id": "sub_123",
            "status": "active",
            "items": {"data": [{"current_period_end": PERIOD_END}]},
        }

        handle(
            {
                "id": "evt_invoice",
                "type": "invoice.paid",
                "data": {"object": {"id": "in_123", "subscription": "sub_123"}},
            }
        )

        membership = Membership.objects.get(club=paid_club, user=member_user)
        assert membership.current_period_end == datetime.fromtimestamp(PERIOD_END, tz=UTC)

    @patch("stripe.Subscription.retrieve")
    def test_failed_invoice_applies_subscription_status(
        self, mock_retrieve: MagicMock, paid_club: Club, member_user: ClubUser
    ) -> None:
        Membership.objects.create(club=paid_club, user=member_user, stripe_subscription_id="sub_123")
        mock_retrieve.return_value = {"id": "sub_123", "status": "unpaid"}

        handle(
            {
                "id": "evt_invoice",
                "type": "invoice.payment_failed",
                "data": {"object": {"id": "in_123", "subscription": "sub_123"}},
            }
        )

        membership = Membership.objects.get(club=paid_club, user=member_user)
        assert membership.status == Membership.MembershipStatus.INACTIVE


class TestHandlerFailure:
    def test_failure_is_reported_and_rolled_back(
        self,
        paid_event: Event,
        member_user: ClubUser,
        make_rsvp: t.Callable[..., EventRSVP],
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        make_rsvp(paid_event, member_user, Status.PENDING_PAYMENT)
        payload = checkout_completed_payload({"event_id": str(paid_event.id), "user_id": str(member_user.id)})

        with (
            patch.object(stripe_webhooks, "confirm_event_payment", side_effect=RuntimeError("db gone")),
            caplog.at_level("ERROR"),
        ):
            outcome = StripeEventHandler(parse_stripe_event(payload)).handle()

        assert outcome.processed is False
        assert "stripe_webhook_handler_failed" in caplog.text
        assert EventRSVP.objects.get(event=paid_event, user=member_user).status == Status.PENDING_PAYMENT

    def test_unhandled_event_is_acknowledged(self) -> None:
        outcome = handle({"id": "evt_1", "type": "charge.refunded", "data": {"object": {}}})

        assert outcome.processed is True
        assert outcome.event_type == "charge.refunded"


class TestReconcileEventCheckout:
    def _session(self, event: Event, user: ClubUser, **overrides: t.Any) -> dict[str, t.Any]:
        return {
            "id": "cs_test_123",
            "payment_status": "paid",
            "payment_intent": {"id": "pi_123", "status": "succeeded", "amount_received": 1500},
            "amount_total": 1500,
            "metadata": {"event_id": str(event.id), "club_id": str(event.club_id), "user_id": str(user.id)},
            **overrides,
        }

    @patch("clubs.service.stripe_webhooks.Session.retrieve")
    def test_confirms_and_redirects(
        self,
        mock_retrieve: MagicMock,
        paid_event: Event,
        member_user: ClubUser,
        make_rsvp: t.Callable[..., EventRSVP],
    ) -> None:
        make_rsvp(paid_event, member_user, Status.PENDING_PAYMENT, stripe_checkout_session_id="cs_test_123")
        mock_retrieve.return_value = self._session(paid_event, member_user)

        url = stripe_webhooks.reconcile_event_checkout("cs_test_123")

        assert url.endswith(f"/clubs/{paid_event.club_id}?eventId={paid_event.id}&eventPayment=success")
        rsvp = EventRSVP.objects.get(event=paid_event, user=member_user)
        assert rsvp.status == Status.GOING
        assert rsvp.stripe_payment_intent_id == "pi_123"

    @patch("clubs.service.stripe_webhooks.Session.retrieve")
    def test_webhook_already_applied(
        self,
        mock_retrieve: MagicMock,
        paid_event: Event,
        member_user: ClubUser,
        make_rsvp: t.Callable[..., EventRSVP],
    ) -> None:
        make_rsvp(paid_event, member_user, Status.GOING, paid_amount_cents=1500)
        mock_retrieve.return_value = self._session(paid_event, member_user)

        url = stripe_webhooks.reconcile_event_checkout("cs_test_123")

        assert url.endswith("eventPayment=success")

    @patch("clubs.service.stripe_webhooks.Session.retrieve")
    def test_processing(self, mock_retrieve: MagicMock, paid_event: Event, member_user: ClubUser) -> None:
        mock_retrieve.return_value = self._session(
            paid_event, member_user, payment_status="unpaid", payment_intent={"id": "pi_123", "status": "processing"}
        )

        assert stripe_webhooks.reconcile_event_checkout("cs_test_123").endswith("eventPayment=processing")

    @patch("clubs.service.stripe_webhooks.Session.retrieve")
    def test_missing_rsvp(self, mock_retrieve: MagicMock, paid_event: Event, member_user: ClubUser) -> None:
        mock_retrieve.return_value = self._session(paid_event, member_user)

        assert stripe_webhooks.reconcile_event_checkout("cs_test_123").endswith("eventPayment=missing_rsvp")

    @patch("clubs.service.stripe_webhooks.Session.retrieve")
    def test_invalid_session(self, mock_retrieve: MagicMock) -> None:
        mock_retrieve.return_value = {"id": "cs_test_123", "payment_status": "paid", "metadata": {}}

        assert stripe_webhooks.reconcile_event_checkout("cs_test_123").endswith("/clubs?error=invalid_session")

    @patch("clubs.service.stripe_webhooks.Session.retrieve")
    def test_provider_failure(self, mock_retrieve: MagicMock) -> None:
        mock_retrieve.side_effect = stripe.error.APIConnectionError("down")

        assert stripe_webhooks.reconcile_event_checkout("cs_test_123").endswith("/clubs?error=checkout_failed")


class TestReconcileMembershipCheckout:
    @patch("clubs.service.stripe_webhooks.Session.retrieve")
    def test_activates_membership(self, mock_retrieve: MagicMock, paid_club: Club, member_user: ClubUser) -> None:
        mock_retrieve.return_value = {
            "id": "cs_sub",
            "mode": "subscription",
            "payment_status": "paid",
            "subscription": {"id": "sub_123", "status": "active", "current_period_end": PERIOD_END},
            "metadata": {"club_id": str(paid_club.id), "user_id": str(member_user.id)},
        }

        url = stripe_webhooks.reconcile_membership_checkout("cs_sub")

        assert url.endswith(f"/clubs/{paid_club.id}?joined=true")
        membership = Membership.objects.get(club=paid_club, user=member_user)
        assert membership.stripe_subscription_id == "sub_123"
        assert membership.current_period_end == datetime.fromtimestamp(PERIOD_END, tz=UTC)

    @patch("clubs.service.stripe_webhooks.Session.retrieve")
    def test_processing(self, mock_retrieve: MagicMock, paid_club: Club, member_user: ClubUser) -> None:
        mock_retrieve.return_value = {
            "id": "cs_sub",
            "payment_status": "unpaid",
            "metadata": {"club_id": str(paid_club.id), "user_id": str(member_user.id)},
        }

        assert stripe_webhooks.reconcile_membership_checkout("cs_sub").endswith("membership=processing")
        assert not Membership.objects.exists()

    @patch("clubs.service.stripe_webhooks.Session.retrieve")
    def test_ended_subscription_is_not_activated(
        self, mock_retrieve: MagicMock, paid_club: Club, member_user: ClubUser
    ) -> None:
        mock_retrieve.return_value = {
            "id": "cs_sub",
            "mode": "subscription",
            "payment_status": "paid",
            "subscription": {"id": "sub_123", "status": "canceled", "current_period_end": PERIOD_END},
            "metadata": {"club_id": str(paid_club.id), "user_id": str(member_user.id)},
        }

        url = stripe_webhooks.reconcile_membership_checkout("cs_sub")

        assert url.endswith(f"/clubs/{paid_club.id}?membership=inactive")
        membership = Membership.objects.get(club=paid_club, user=member_user)
        assert membership.status == Membership.MembershipStatus.INACTIVE
