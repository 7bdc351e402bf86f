"""Types returned by the registration services."""

from dataclasses import dataclass

from pydantic import BaseModel, ConfigDict

from clubs.models import Event, EventRSVP


@dataclass(frozen=True)
class EventTerms:
    """The two event properties that decide which path a registration takes."""

    paid: bool
    requires_approval: bool

    @classmethod
    def for_event(cls, event: Event) -> "EventTerms":
        return cls(paid=event.is_paid, requires_approval=event.requires_approval)


class RSVPResult(BaseModel):
    """Outcome of a user's RSVP request."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    rsvp: EventRSVP
    requires_payment: bool
    requires_approval: bool
    changed: bool = True
