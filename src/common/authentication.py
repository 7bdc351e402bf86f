import typing as t

import structlog
from django.utils.translation import gettext_lazy as _
from ninja_jwt.authentication import JWTAuth
from ninja_jwt.exceptions import InvalidToken
from ninja_jwt.settings import api_settings

from accounts.models import ClubUser
from accounts.service import provision_user


class ProvisioningJWTAuth(JWTAuth):
    """JWT authentication against an external identity provider.

    The token's subject is mapped to a local user; a user seen for the first time is created
    on the spot, so every authenticated request has a local identity to attach ownership,
    registrations and memberships to.

    Usage:
        @api_controller("/clubs", auth=ProvisioningJWTAuth())
        class ClubController:
            ...
    """

    def get_user(self, validated_token: t.Any) -> ClubUser:
        """Resolve, or provision, the local user for a validated token."""
        try:
            external_id = validated_token[api_settings.USER_ID_CLAIM]
        except KeyError:
            raise InvalidToken(_("Token contained no recognizable user identification"))

        user = provision_user(str(external_id), claims=validated_token.payload)
        if not user.is_active:
            raise InvalidToken(_("User is inactive"))
        structlog.contextvars.bind_contextvars(user_id=str(user.id))
        return user
