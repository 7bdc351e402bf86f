"""Typed Stripe webhook payloads.

Each handled event type has its own variant; anything else parses as UnhandledStripeEvent.
Only the fields the reconciler reads are declared.
"""

import typing as t
import uuid

from pydantic import BaseModel, ConfigDict, Field, field_validator


class StripeModel(BaseModel):
    model_config = ConfigDict(extra="ignore")


def _optional_uuid(value: t.Any) -> uuid.UUID | None:
    try:
        return uuid.UUID(str(value)) if value else None
    except ValueError:
        return None


class CorrelationMetadata(StripeModel):
    """Identifiers attached to sessions and subscriptions when they are created.

    Unparseable ids are treated as absent.
    """

    event_id: uuid.UUID | None = None
    club_id: uuid.UUID | None = None
    user_id: uuid.UUID | None = None

    @field_validator("event_id", "club_id", "user_id", mode="before")
    @classmethod
    def parse_uuid(cls, value: t.Any) -> uuid.UUID | None:
        return _optional_uuid(value)


class CheckoutSessionObject(StripeModel):
    id: str
    mode: str | None = None
    payment_status: str | None = None
    payment_intent: str | None = None
    subscription: str | None = None
    amount_total: int | None = None
    metadata: CorrelationMetadata = Field(default_factory=CorrelationMetadata)

    @field_validator("payment_intent", "subscription", mode="before")
    @classmethod
    def expandable_id(cls, value: t.Any) -> str | None:
        if isinstance(value, dict):
            return value.get("id")
        return value

    @field_validator("metadata", mode="before")
    @classmethod
    def null_metadata(cls, value: t.Any) -> t.Any:
        return value or {}


class SubscriptionItem(StripeModel):
    current_period_end: int | None = None


class SubscriptionItems(StripeModel):
    data: list[SubscriptionItem] = []


class SubscriptionObject(StripeModel):
    id: str
    status: str
    current_period_end: int | None = None
    items: SubscriptionItems | None = None
    metadata: CorrelationMetadata = Field(default_factory=CorrelationMetadata)

    @field_validator("metadata", mode="before")
    @classmethod
    def null_metadata(cls, value: t.Any) -> t.Any:
        return value or {}


class InvoiceSubscriptionDetails(StripeModel):
    subscription: str | None = None


class InvoiceParent(StripeModel):
    subscription_details: InvoiceSubscriptionDetails | None = None


class InvoiceObject(StripeModel):
    id: str
    subscription: str | None = None
    parent: InvoiceParent | None = None

    @field_validator("subscription", mode="before")
    @classmethod
    def expandable_id(cls, value: t.Any) -> str | None:
        if isinstance(value, dict):
            return value.get("id")
        return value

    @property
    def subscription_id(self) -> str | None:
        if self.subscription:
            return self.subscription
        if self.parent and self.parent.subscription_details:
            return self.parent.subscription_details.subscription
        return None


class CheckoutSessionData(StripeModel):
    object: CheckoutSessionObject


class SubscriptionData(StripeModel):
    object: SubscriptionObject


class InvoiceData(StripeModel):
    object: InvoiceObject


class BaseStripeEvent(StripeModel):
    id: str
    type: str
    handler: t.ClassVar[str] = "handle_unknown_event"


class CheckoutSessionCompleted(BaseStripeEvent):
    type: t.Literal["checkout.session.completed", "checkout.session.async_payment_succeeded"]
    data: CheckoutSessionData
    handler: t.ClassVar[str] = "handle_checkout_session_completed"


class CheckoutSessionPaymentFailed(BaseStripeEvent):
    type: t.Literal["checkout.session.async_payment_failed"]
    data: CheckoutSessionData
    handler: t.ClassVar[str] = "handle_checkout_session_payment_failed"


class SubscriptionUpdated(BaseStripeEvent):
    type: t.Literal["customer.subscription.updated", "customer.subscription.created"]
    data: SubscriptionData
    handler: t.ClassVar[str] = "handle_customer_subscription_updated"


class SubscriptionDeleted(BaseStripeEvent):
    type: t.Literal["customer.subscription.deleted"]
    data: SubscriptionData
    handler: t.ClassVar[str] = "handle_customer_subscription_deleted"


class InvoicePaid(BaseStripeEvent):
    type: t.Literal["invoice.paid", "invoice.payment_succeeded"]
    data: InvoiceData
    handler: t.ClassVar[str] = "handle_invoice_paid"


class InvoicePaymentFailed(BaseStripeEvent):
    type: t.Literal["invoice.payment_failed"]
    data: InvoiceData
    handler: t.ClassVar[str] = "handle_invoice_payment_failed"


class UnhandledStripeEvent(BaseStripeEvent):
    """Any event type the reconciler does not act on."""


StripeWebhookEvent = (
    CheckoutSessionCompleted
    | CheckoutSessionPaymentFailed
    | SubscriptionUpdated
    | SubscriptionDeleted
    | InvoicePaid
    | InvoicePaymentFailed
    | UnhandledStripeEvent
)

HANDLED_EVENT_TYPES: dict[str, type[BaseStripeEvent]] = {
    event_type: variant
    for variant in (
        CheckoutSessionCompleted,
        CheckoutSessionPaymentFailed,
        SubscriptionUpdated,
        SubscriptionDeleted,
        InvoicePaid,
        InvoicePaymentFailed,
    )
    for event_type in t.get_args(variant.model_fields["type"].annotation)
}


def parse_stripe_event(payload: dict[str, t.Any]) -> StripeWebhookEvent:
    """Parse a verified webhook payload into its variant.

    Raises:
        pydantic.ValidationError: the payload of a handled type is malformed.
    """
    variant = HANDLED_EVENT_TYPES.get(str(payload.get("type")), UnhandledStripeEvent)
    return t.cast(StripeWebhookEvent, variant.model_validate(payload))
