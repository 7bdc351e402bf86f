from ninja import Field, ModelSchema, Schema

from clubs.models import Event


class EventSchema(ModelSchema):
    class Meta:
        model = Event
        fields = (
            "id",
            "club",
            "title",
            "starts_at",
            "timezone",
            "price_cents",
            "max_capacity",
            "requires_approval",
            "stripe_product_id",
            "stripe_price_id",
        )


class EventPricingSchema(Schema):
    price_cents: int | None = Field(None, ge=0, description="Price in minor units; null or 0 makes the event free")


class EventCapacitySchema(Schema):
    max_capacity: int | None = Field(None, ge=1, description="Seat limit; null removes it")
