import typing as t
from unittest.mock import MagicMock, patch

import orjson
import pytest
from django.test.client import Client
from django.urls import reverse

from accounts.models import ClubUser
from clubs.models import Event, EventRSVP
from common.models import AuditLog

pytestmark = pytest.mark.django_db

Status = EventRSVP.RsvpStatus


def admin_url(name: str, event: Event, **kwargs: t.Any) -> str:
    return reverse(f"api:{name}", kwargs={"club_id": event.club_id, "event_id": event.pk, **kwargs})


class TestPermissions:
    @pytest.mark.parametrize("client_fixture", ["member_client", "nonmember_client"])
    def test_non_organizers_are_forbidden(
        self,
        request: pytest.FixtureRequest,
        client_fixture: str,
        approval_event: Event,
    ) -> None:
        client: Client = request.getfixturevalue(client_fixture)

        response = client.get(admin_url("list_pending_requests", approval_event))

        assert response.status_code == 403

    def test_unknown_club(self, organizer_client: Client, approval_event: Event) -> None:
        url = reverse(
            "api:list_pending_requests",
            kwargs={"club_id": "00000000-0000-0000-0000-000000000000", "event_id": approval_event.pk},
        )

        response = organizer_client.get(url)

        assert response.status_code == 404


class TestApprovalEndpoints:
    def test_list_pending(
        self,
        organizer_client: Client,
        approval_event: Event,
        user_factory: t.Any,
        make_rsvp: t.Callable[..., EventRSVP],
    ) -> None:
        pending = user_factory.create_user()
        make_rsvp(approval_event, pending, Status.PENDING_APPROVAL)
        make_rsvp(approval_event, user_factory.create_user(), Status.REJECTED)

        response = organizer_client.get(admin_url("list_pending_requests", approval_event))

        assert response.status_code == 200
        data = response.json()
        assert [r["user"]["id"] for r in data] == [str(pending.id)]

    def test_approve_paid_request(
        self,
        organizer_client: Client,
        paid_approval_event: Event,
        member_user: ClubUser,
        make_rsvp: t.Callable[..., EventRSVP],
    ) -> None:
        make_rsvp(paid_approval_event, member_user, Status.PENDING_APPROVAL)

        response = organizer_client.post(admin_url("approve_request", paid_approval_event, user_id=member_user.pk))

        assert response.status_code == 200, response.content
        assert response.json()["rsvp"]["status"] == "approved_pending_payment"
        assert AuditLog.objects.filter(action="event.rsvp_approve").count() == 1

    def test_reject_with_reason(
        self,
        organizer_client: Client,
        approval_event: Event,
        member_user: ClubUser,
        make_rsvp: t.Callable[..., EventRSVP],
    ) -> None:
        make_rsvp(approval_event, member_user, Status.PENDING_APPROVAL)

        response = organizer_client.post(
            admin_url("reject_request", approval_event, user_id=member_user.pk),
            data=orjson.dumps({"reason": "capacity"}),
            content_type="application/json",
        )

        assert response.status_code == 200, response.content
        assert response.json()["rsvp"]["status"] == "rejected"
        assert response.json()["rsvp"]["rejection_reason"] == "capacity"

    def test_stale_decision(self, organizer_client: Client, approval_event: Event, member_user: ClubUser) -> None:
        response = organizer_client.post(admin_url("approve_request", approval_event, user_id=member_user.pk))

        assert response.status_code == 404
        assert response.json()["code"] == "not_found_or_processed"

    def test_bulk_approve(
        self,
        organizer_client: Client,
        approval_event: Event,
        user_factory: t.Any,
        make_rsvp: t.Callable[..., EventRSVP],
    ) -> None:
        users = [user_factory.create_user() for _ in range(3)]
        for user in users[:2]:
            make_rsvp(approval_event, user, Status.PENDING_APPROVAL)

        response = organizer_client.post(
            admin_url("bulk_decide_requests", approval_event),
            data=orjson.dumps({"action": "approve", "user_ids": [str(u.pk) for u in users]}),
            content_type="application/json",
        )

        assert response.status_code == 200, response.content
        assert response.json() == {"status": "approve", "updated_count": 2}

    def test_bulk_requires_user_ids(self, organizer_client: Client, approval_event: Event) -> None:
        response = organizer_client.post(
            admin_url("bulk_decide_requests", approval_event),
            data=orjson.dumps({"action": "approve", "user_ids": []}),
            content_type="application/json",
        )

        assert response.status_code == 422


class TestRegistrations:
    def test_filter_by_status(
        self,
        organizer_client: Client,
        approval_event: Event,
        user_factory: t.Any,
        make_rsvp: t.Callable[..., EventRSVP],
    ) -> None:
        make_rsvp(approval_event, user_factory.create_user(), Status.GOING)
        rejected = make_rsvp(approval_event, user_factory.create_user(), Status.REJECTED, rejection_reason="capacity")

        response = organizer_client.get(admin_url("list_registrations", approval_event), {"status": "rejected"})

        assert response.status_code == 200, response.content
        data = response.json()
        assert data["count"] == 1
        assert data["results"][0]["id"] == str(rejected.pk)
        assert data["results"][0]["rejection_reason"] == "capacity"


class TestPricingAndCapacity:
    @patch("clubs.service.stripe_service.set_event_price")
    def test_set_price(
        self, mock_set_price: MagicMock, organizer_client: Client, paid_event: Event, organizer: ClubUser
    ) -> None:
        mock_set_price.return_value = paid_event

        response = organizer_client.post(
            admin_url("set_event_price", paid_event),
            data=orjson.dumps({"price_cents": 2500}),
            content_type="application/json",
        )

        assert response.status_code == 200, response.content
        assert mock_set_price.call_args.args[1] == 2500
        assert mock_set_price.call_args.kwargs["actor"] == organizer

    def test_price_locked(
        self,
        organizer_client: Client,
        paid_event: Event,
        member_user: ClubUser,
        make_rsvp: t.Callable[..., EventRSVP],
    ) -> None:
        make_rsvp(paid_event, member_user, Status.GOING)

        response = organizer_client.post(
            admin_url("set_event_price", paid_event),
            data=orjson.dumps({"price_cents": 2500}),
            content_type="application/json",
        )

        assert response.status_code == 409
        assert response.json()["code"] == "price_locked"

    def test_price_below_minimum(self, organizer_client: Client, free_event: Event) -> None:
        response = organizer_client.post(
            admin_url("set_event_price", free_event),
            data=orjson.dumps({"price_cents": 10}),
            content_type="application/json",
        )

        assert response.status_code == 400
        assert "price_cents" in response.json()["errors"]

    def test_capacity_below_reserved(
        self,
        organizer_client: Client,
        free_event: Event,
        user_factory: t.Any,
        make_rsvp: t.Callable[..., EventRSVP],
    ) -> None:
        for _ in range(2):
            make_rsvp(free_event, user_factory.create_user(), Status.GOING)

        response = organizer_client.patch(
            admin_url("set_event_capacity", free_event),
            data=orjson.dumps({"max_capacity": 1}),
            content_type="application/json",
        )

        assert response.status_code == 409
        assert response.json()["code"] == "capacity_below_reserved"

    def test_set_capacity(self, organizer_client: Client, free_event: Event) -> None:
        response = organizer_client.patch(
            admin_url("set_event_capacity", free_event),
            data=orjson.dumps({"max_capacity": 30}),
            content_type="application/json",
        )

        assert response.status_code == 200, response.content
        assert response.json()["max_capacity"] == 30
