from .club import Club, Membership
from .event import Event
from .rsvp import RESERVED_STATUSES, EventRSVP

__all__ = [
    "RESERVED_STATUSES",
    "Club",
    "Event",
    "EventRSVP",
    "Membership",
]
