"""Project-wide fixtures: users, caches and Celery."""

import secrets
import string
import typing as t

import faker
import pytest
from django.core.cache import cache
from django.test.client import Client
from ninja_jwt.tokens import RefreshToken

from accounts.models import ClubUser


@pytest.fixture(autouse=True)
def enable_celery_eager_mode() -> t.Iterator[None]:
    """Run Celery tasks synchronously so their side effects are visible to the test."""
    from clubhouse.celery import app

    previous = app.conf.task_always_eager, app.conf.task_eager_propagates
    app.conf.task_always_eager = True
    app.conf.task_eager_propagates = True
    yield
    app.conf.task_always_eager, app.conf.task_eager_propagates = previous


@pytest.fixture(autouse=True)
def clear_cache() -> None:
    """Start every test with empty throttle counters."""
    cache.clear()


class ClubUserFactory:
    """Factory for creating ClubUser instances for testing."""

    fake = faker.Faker()

    def create_user(self, **kwargs: t.Any) -> ClubUser:
        suffix = "".join(secrets.choice(string.ascii_lowercase) for _ in range(8))
        username = kwargs.pop("username", f"{suffix}@user.test")
        email = kwargs.pop("email", username if "@" in username else f"{username}@test.com")
        external_id = kwargs.pop("external_id", f"idp|{suffix}")
        name = kwargs.pop("name", self.fake.name())
        return ClubUser.objects.create_user(
            username=username, email=email, external_id=external_id, name=name, **kwargs
        )


@pytest.fixture
def user_factory() -> ClubUserFactory:
    return ClubUserFactory()


@pytest.fixture
def user(user_factory: ClubUserFactory) -> ClubUser:
    return user_factory.create_user()


@pytest.fixture
def organizer(user_factory: ClubUserFactory) -> ClubUser:
    """A user whose connected payment account can receive charges."""
    return user_factory.create_user(
        stripe_connect_account_id="acct_organizer",
        stripe_connect_charges_enabled=True,
        stripe_connect_details_submitted=True,
    )


@pytest.fixture
def member_user(user_factory: ClubUserFactory) -> ClubUser:
    return user_factory.create_user()


@pytest.fixture
def nonmember_user(user_factory: ClubUserFactory) -> ClubUser:
    return user_factory.create_user()


def client_for(user: ClubUser) -> Client:
    """API client authenticated as the given user."""
    refresh = RefreshToken.for_user(user)
    return Client(HTTP_AUTHORIZATION=f"Bearer {str(refresh.access_token)}")  # type: ignore[attr-defined]


@pytest.fixture
def user_client(user: ClubUser) -> Client:
    return client_for(user)


@pytest.fixture
def organizer_client(organizer: ClubUser) -> Client:
    return client_for(organizer)


@pytest.fixture
def member_client(member_user: ClubUser) -> Client:
    return client_for(member_user)


@pytest.fixture
def nonmember_client(nonmember_user: ClubUser) -> Client:
    return client_for(nonmember_user)


@pytest.fixture
def make_client() -> t.Callable[[ClubUser], Client]:
    return client_for
