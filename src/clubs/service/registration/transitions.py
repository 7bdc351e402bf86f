"""Registration transition rules.

Pure functions: given the current status, the requested change and the event's terms, they
return the next status or raise. Callers are responsible for capacity and persistence.
"""

from clubs.exceptions import InvalidRSVPTransitionError, StaleRegistrationError
from clubs.models import RESERVED_STATUSES, EventRSVP

from .enums import Decision
from .types import EventTerms

Status = EventRSVP.RsvpStatus

# Statuses from which a "going" request starts the pipeline again.
ENTRY_STATUSES: frozenset[str | None] = frozenset({None, Status.NOT_GOING, Status.REJECTED, Status.PAYMENT_FAILED})

# Statuses a user may withdraw from.
WITHDRAWABLE_STATUSES: frozenset[str | None] = frozenset(
    {None, Status.NOT_GOING, Status.PAYMENT_FAILED} | RESERVED_STATUSES
)

# Statuses a successful payment confirms.
PAYABLE_STATUSES: frozenset[str] = frozenset({Status.PENDING_PAYMENT, Status.APPROVED_PENDING_PAYMENT})

# Statuses a failed payment releases. Approved registrations keep their approval and may retry.
FAILABLE_STATUSES: frozenset[str] = frozenset({Status.PENDING_PAYMENT})


def entry_status(terms: EventTerms) -> Status:
    """First status of a new registration: approval, then payment, then confirmation."""
    if terms.requires_approval:
        return Status.PENDING_APPROVAL
    if terms.paid:
        return Status.PENDING_PAYMENT
    return Status.GOING


def user_transition(current: str | None, target: str, terms: EventTerms) -> Status:
    """Next status for a user asking to go, or not go, to an event.

    A "going" request from someone already holding a seat keeps their status unchanged.
    """
    if target == Status.GOING:
        if current in ENTRY_STATUSES:
            return entry_status(terms)
        if current in RESERVED_STATUSES:
            return Status(current)
    elif target == Status.NOT_GOING:
        if current in WITHDRAWABLE_STATUSES:
            return Status.NOT_GOING
    raise InvalidRSVPTransitionError(current, target)


def organizer_transition(current: str | None, decision: Decision, terms: EventTerms) -> Status:
    """Next status after an organizer's decision on a pending request."""
    if current != Status.PENDING_APPROVAL:
        raise StaleRegistrationError()
    if decision == Decision.REJECT:
        return Status.REJECTED
    return Status.APPROVED_PENDING_PAYMENT if terms.paid else Status.GOING


def payment_succeeded_transition(current: str | None) -> Status:
    """Next status once the provider reports a completed payment."""
    if current not in PAYABLE_STATUSES:
        raise InvalidRSVPTransitionError(current, Status.GOING)
    return Status.GOING


def payment_failed_transition(current: str | None) -> Status:
    """Next status once the provider reports a failed payment."""
    if current not in FAILABLE_STATUSES:
        raise InvalidRSVPTransitionError(current, Status.PAYMENT_FAILED)
    return Status.PAYMENT_FAILED
