"""Clubs controllers package."""

from .clubs import ClubController
from .event_admin import EventAdminController
from .events import EventRegistrationController
from .stripe import StripeConnectController, StripeWebhookController

CLUB_CONTROLLERS: list[type] = [
    ClubController,
    EventRegistrationController,
    EventAdminController,
    StripeConnectController,
    StripeWebhookController,
]

__all__ = [
    "CLUB_CONTROLLERS",
    "ClubController",
    "EventAdminController",
    "EventRegistrationController",
    "StripeConnectController",
    "StripeWebhookController",
]
