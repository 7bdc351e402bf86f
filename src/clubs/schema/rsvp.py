import typing as t
import uuid

from ninja import Field, ModelSchema, Schema

from clubs.models import EventRSVP
from clubs.service.registration.enums import Decision
from common.schema import MemberSchema, OneToFiveHundredString


class RSVPRequestSchema(Schema):
    status: t.Literal["going", "not_going"]


class EventRSVPSchema(ModelSchema):
    class Meta:
        model = EventRSVP
        fields = (
            "id",
            "event",
            "user",
            "status",
            "approved_at",
            "rejected_at",
            "rejection_reason",
            "paid_at",
            "paid_amount_cents",
            "created_at",
            "updated_at",
        )


class RSVPResponseSchema(Schema):
    rsvp: EventRSVPSchema
    requires_payment: bool
    requires_approval: bool


class RegistrationSchema(ModelSchema):
    """A registration as organizers see it."""

    user: MemberSchema

    class Meta:
        model = EventRSVP
        fields = (
            "id",
            "status",
            "approved_at",
            "rejected_at",
            "rejection_reason",
            "paid_at",
            "paid_amount_cents",
            "created_at",
            "updated_at",
        )


class PendingRequestSchema(ModelSchema):
    user: MemberSchema

    class Meta:
        model = EventRSVP
        fields = ("id", "status", "created_at")


class DecisionResponseSchema(Schema):
    rsvp: EventRSVPSchema
    message: str


class RejectRequestSchema(Schema):
    reason: OneToFiveHundredString | None = None


class BulkDecisionSchema(Schema):
    action: Decision
    user_ids: list[uuid.UUID] = Field(..., min_length=1, max_length=100)
    rejection_reason: OneToFiveHundredString | None = None


class BulkDecisionResponseSchema(Schema):
    status: Decision
    updated_count: int
