"""Domain errors raised by club, registration and payment services.

Each maps to one HTTP status in ``api.exception_handlers``.
"""

import uuid

from django.utils.translation import gettext as _
from django.utils.translation import gettext_noop


class RegistrationConflictError(Exception):
    """A request conflicts with the current state of a registration or event."""

    code = "conflict"
    default_message = gettext_noop("The request conflicts with the current state.")

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or _(self.default_message))


class CapacityExceededError(RegistrationConflictError):
    """Raised when a registration would take a seat the event no longer has."""

    code = "capacity_exceeded"
    default_message = gettext_noop("This event is full.")

    def __init__(self, event_id: uuid.UUID, message: str | None = None) -> None:
        super().__init__(message)
        self.event_id = event_id


class CapacityReductionError(RegistrationConflictError):
    """Raised when a new capacity would be below the seats already held."""

    code = "capacity_below_reserved"

    def __init__(self, reserved: int, requested: int) -> None:
        super().__init__(
            _("Capacity cannot be set to %(requested)s: %(reserved)s seats are already held.")
            % {"requested": requested, "reserved": reserved}
        )
        self.reserved = reserved
        self.requested = requested


class PriceLockedError(RegistrationConflictError):
    """Raised when repricing an event that already has confirmed registrations."""

    code = "price_locked"
    default_message = gettext_noop("The price cannot change once someone is confirmed for this event.")


class AlreadyConfirmedError(RegistrationConflictError):
    """Raised when starting a checkout for a registration that is already confirmed."""

    code = "already_confirmed"
    default_message = gettext_noop("You are already confirmed for this event.")


class RegistrationNotPayableError(RegistrationConflictError):
    """Raised when starting a checkout for a registration that is not awaiting payment."""

    code = "not_payable"
    default_message = gettext_noop("This registration is not awaiting payment.")


class StaleRegistrationError(Exception):
    """Raised when an organizer decision targets a registration that is no longer pending."""

    code = "not_found_or_processed"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or _("Request not found or already processed."))


class InvalidRSVPTransitionError(Exception):
    """Raised when a requested status change is not allowed from the current status."""

    code = "invalid_transition"

    def __init__(self, current: str | None, target: str) -> None:
        super().__init__(
            _("Cannot change registration from %(current)s to %(target)s.")
            % {"current": current or "none", "target": target}
        )
        self.current = current
        self.target = target


class RegistrationNotAllowedError(Exception):
    """Raised when a user may not register for an event at all."""

    code = "not_allowed"


class PaymentNotConfiguredError(Exception):
    """Raised when an organizer's payment account cannot receive charges yet."""

    code = "payments_not_configured"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or _("The organizer has not finished setting up payments."))


class PaymentProviderError(Exception):
    """Raised when a call to the payment provider fails.

    Carries no provider detail; the cause is logged where it is raised.
    """

    code = "payment_provider_error"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or _("The payment provider could not process the request. Please try again."))


class AlreadyMemberError(Exception):
    """Raised when a user is already an active member of a club."""

    code = "already_member"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or _("You are already a member of this club."))
