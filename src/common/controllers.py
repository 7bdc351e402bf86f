import typing as t

from django.contrib.auth.models import AnonymousUser
from ninja_extra import ControllerBase

from accounts.models import ClubUser


class UserAwareController(ControllerBase):
    def maybe_user(self) -> ClubUser | AnonymousUser:
        """Get the user for this request."""
        return t.cast(ClubUser | AnonymousUser, self.context.request.user)  # type: ignore[union-attr]

    def user(self) -> ClubUser:
        """Get the user for this request."""
        return t.cast(ClubUser, self.context.request.user)  # type: ignore[union-attr]
