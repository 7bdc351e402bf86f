from .club import (
    CheckoutResponseSchema,
    CleanupResponseSchema,
    ClubPricingSchema,
    ClubSchema,
    ConnectStatusSchema,
    StripeLinkSchema,
)
from .event import EventCapacitySchema, EventPricingSchema, EventSchema
from .rsvp import (
    BulkDecisionResponseSchema,
    BulkDecisionSchema,
    DecisionResponseSchema,
    EventRSVPSchema,
    PendingRequestSchema,
    RegistrationSchema,
    RejectRequestSchema,
    RSVPRequestSchema,
    RSVPResponseSchema,
)

__all__ = [
    "BulkDecisionResponseSchema",
    "BulkDecisionSchema",
    "CheckoutResponseSchema",
    "CleanupResponseSchema",
    "ClubPricingSchema",
    "ClubSchema",
    "ConnectStatusSchema",
    "DecisionResponseSchema",
    "EventCapacitySchema",
    "EventPricingSchema",
    "EventRSVPSchema",
    "EventSchema",
    "PendingRequestSchema",
    "RSVPRequestSchema",
    "RSVPResponseSchema",
    "RegistrationSchema",
    "RejectRequestSchema",
    "StripeLinkSchema",
]
