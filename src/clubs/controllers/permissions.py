from django.http import HttpRequest
from ninja_extra import ControllerBase
from ninja_extra.permissions import BasePermission

from clubs.models import Club


class RootPermission(BasePermission):
    def has_permission(self, request: HttpRequest, controller: ControllerBase) -> bool:
        """Must implement abstract method. This is due to an error in Ninja Extra.

        This Method will be ignored, only has_object_permission will be called.
        """
        return True


class IsClubOrganizer(RootPermission):
    def has_object_permission(self, request: HttpRequest, controller: ControllerBase, obj: Club) -> bool:
        """Only the club's organizer may manage it."""
        return bool(obj.organizer_id == request.user.id)
