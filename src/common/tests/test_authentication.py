import pytest
import structlog
from ninja_jwt.exceptions import InvalidToken
from ninja_jwt.tokens import AccessToken

from accounts.models import ClubUser
from common.authentication import ProvisioningJWTAuth

pytestmark = pytest.mark.django_db


class TestProvisioningJWTAuth:
    def test_known_subject_resolves_existing_user(self, user: ClubUser) -> None:
        token = AccessToken.for_user(user)

        resolved = ProvisioningJWTAuth().get_user(token)

        assert resolved == user
        assert ClubUser.objects.count() == 1

    def test_unknown_subject_is_provisioned_once(self) -> None:
        token = AccessToken()
        token["sub"] = "idp|new-person"
        token["email"] = "new.person@example.com"
        token["name"] = "New Person"

        first = ProvisioningJWTAuth().get_user(token)
        second = ProvisioningJWTAuth().get_user(token)

        assert first.pk == second.pk
        assert first.external_id == "idp|new-person"
        assert first.email == "new.person@example.com"
        assert first.display_name == "New Person"
        assert ClubUser.objects.filter(external_id="idp|new-person").count() == 1

    def test_token_without_subject(self) -> None:
        token = AccessToken()

        with pytest.raises(InvalidToken):
            ProvisioningJWTAuth().get_user(token)

    def test_inactive_user(self, user: ClubUser) -> None:
        user.is_active = False
        user.save()

        with pytest.raises(InvalidToken):
            ProvisioningJWTAuth().get_user(AccessToken.for_user(user))

    def test_resolved_user_is_bound_to_log_context(self, user: ClubUser) -> None:
        structlog.contextvars.clear_contextvars()

        ProvisioningJWTAuth().get_user(AccessToken.for_user(user))

        assert structlog.contextvars.get_contextvars()["user_id"] == str(user.id)
        structlog.contextvars.clear_contextvars()
