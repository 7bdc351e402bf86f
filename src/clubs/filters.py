from ninja import FilterSchema

from clubs.models import EventRSVP


class RegistrationFilterSchema(FilterSchema):
    """Filter schema for an event's registrations."""

    status: EventRSVP.RsvpStatus | None = None
