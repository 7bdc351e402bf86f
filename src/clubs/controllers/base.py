import typing as t
from uuid import UUID

from django.shortcuts import get_object_or_404

from clubs.models import Club, Event
from common.controllers import UserAwareController


class ClubScopedController(UserAwareController):
    """Base controller for routes nested under a club.

    The club lookup runs the route's object permissions; the event must belong to the club.
    """

    def get_club(self, club_id: UUID) -> Club:
        return t.cast(Club, self.get_object_or_exception(Club.objects.with_organizer(), pk=club_id))

    def get_event(self, club_id: UUID, event_id: UUID) -> Event:
        club = self.get_club(club_id)
        return get_object_or_404(Event.objects.with_club(), pk=event_id, club=club)
