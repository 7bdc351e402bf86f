import typing as t
from datetime import timedelta

import pytest
from django.utils import timezone

from accounts.models import ClubUser
from clubs.models import Club, Event, EventRSVP, Membership


@pytest.fixture
def club(organizer: ClubUser) -> Club:
    return Club.objects.create(name="Chess Club", organizer=organizer)


@pytest.fixture
def paid_club(organizer: ClubUser) -> Club:
    return Club.objects.create(
        name="Climbing Club",
        organizer=organizer,
        membership_price_cents=2000,
        stripe_product_id="prod_club",
        stripe_price_id="price_club",
    )


@pytest.fixture
def membership(club: Club, member_user: ClubUser) -> Membership:
    return Membership.objects.create(club=club, user=member_user)


def _event(club: Club, **kwargs: t.Any) -> Event:
    return Event.objects.create(
        club=club,
        title=kwargs.pop("title", "Friday Night Blitz"),
        starts_at=timezone.now() + timedelta(days=7),
        **kwargs,
    )


@pytest.fixture
def free_event(club: Club) -> Event:
    return _event(club)


@pytest.fixture
def paid_event(club: Club) -> Event:
    return _event(club, title="Simul", price_cents=1500)


@pytest.fixture
def approval_event(club: Club) -> Event:
    return _event(club, title="Closed Tournament", requires_approval=True)


@pytest.fixture
def paid_approval_event(club: Club) -> Event:
    return _event(club, title="Masterclass", price_cents=5000, requires_approval=True)


@pytest.fixture
def single_seat_event(club: Club) -> Event:
    return _event(club, title="Private Lesson", max_capacity=1)


@pytest.fixture
def members_only_event(paid_club: Club) -> Event:
    return _event(paid_club, title="Members Boulder Night")


@pytest.fixture
def make_rsvp() -> t.Callable[..., EventRSVP]:
    def _make(event: Event, user: ClubUser, status: EventRSVP.RsvpStatus, **kwargs: t.Any) -> EventRSVP:
        return EventRSVP.objects.create(event=event, user=user, status=status, **kwargs)

    return _make
