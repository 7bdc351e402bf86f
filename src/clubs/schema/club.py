import typing as t

from ninja import Field, ModelSchema, Schema

from accounts.models import ClubUser
from clubs.models import Club


class ClubSchema(ModelSchema):
    class Meta:
        model = Club
        fields = ("id", "name", "membership_price_cents", "stripe_product_id", "stripe_price_id")


class ClubPricingSchema(Schema):
    price_cents: int = Field(..., ge=0, description="Monthly membership price in minor units")


class CheckoutResponseSchema(Schema):
    checkout_url: str


class CleanupResponseSchema(Schema):
    status: t.Literal["ok"] = "ok"
    warnings: list[str] = []


class StripeLinkSchema(Schema):
    url: str


class ConnectStatusSchema(ModelSchema):
    class Meta:
        model = ClubUser
        fields = ("stripe_connect_account_id", "stripe_connect_charges_enabled", "stripe_connect_details_submitted")
