"""Capacity ledger.

A seat is held by every registration in a reserved status. Writes that may take a seat lock
the event row first, so concurrent requests for the same event are serialized and can never
both observe the last free seat.
"""

import uuid

import structlog
from django.db import transaction

from clubs.exceptions import CapacityExceededError, CapacityReductionError
from clubs.models import Event, EventRSVP

logger = structlog.get_logger(__name__)


def lock_event(event_id: uuid.UUID) -> Event:
    """Lock and return the event row for the rest of the current transaction."""
    return Event.objects.select_for_update().get(pk=event_id)


def count_reserved(event_id: uuid.UUID) -> int:
    """Number of seats currently held for the event."""
    return EventRSVP.objects.filter(event_id=event_id).reserved().count()


def has_capacity(event: Event) -> bool:
    """True if one more seat can be taken. Must run under ``lock_event``."""
    if event.max_capacity is None:
        return True
    return count_reserved(event.pk) < event.max_capacity


def assert_capacity(event: Event) -> None:
    """Raise CapacityExceededError if the event has no free seat. Must run under ``lock_event``."""
    if not has_capacity(event):
        logger.info("event_capacity_exceeded", event_id=str(event.pk), max_capacity=event.max_capacity)
        raise CapacityExceededError(event_id=event.pk)


@transaction.atomic
def update_max_capacity(event: Event, max_capacity: int | None) -> Event:
    """Change an event's capacity; ``None`` removes the limit.

    The new capacity may never be lower than the number of seats already held.
    """
    locked = lock_event(event.pk)
    if max_capacity is not None:
        reserved = count_reserved(locked.pk)
        if reserved > max_capacity:
            raise CapacityReductionError(reserved=reserved, requested=max_capacity)

    locked.max_capacity = max_capacity
    locked.save(update_fields=["max_capacity", "updated_at"])
    logger.info("event_capacity_updated", event_id=str(locked.pk), max_capacity=max_capacity)
    return locked
