import typing as t

from django.core.validators import MinValueValidator
from django.db import models

from common.models import TimeStampedModel

from ..validators import validate_timezone
from .club import Club


class EventQuerySet(models.QuerySet["Event"]):
    def with_club(self) -> t.Self:
        """Select the club and its organizer along with the event."""
        return self.select_related("club", "club__organizer")


class Event(TimeStampedModel):
    club = models.ForeignKey(Club, on_delete=models.CASCADE, related_name="events")
    title = models.CharField(max_length=120)
    description = models.TextField(blank=True, default="")
    starts_at = models.DateTimeField(db_index=True)
    timezone = models.CharField(max_length=64, default="UTC", validators=[validate_timezone])
    price_cents = models.PositiveIntegerField(null=True, blank=True)
    max_capacity = models.PositiveIntegerField(null=True, blank=True, validators=[MinValueValidator(1)])
    requires_approval = models.BooleanField(default=False)
    stripe_product_id = models.CharField(max_length=255, null=True, blank=True)
    stripe_price_id = models.CharField(max_length=255, null=True, blank=True)

    objects = EventQuerySet.as_manager()

    class Meta:
        ordering = ["starts_at"]

    def __str__(self) -> str:
        return self.title

    @property
    def is_paid(self) -> bool:
        """Paid events require a successful checkout before a registration is confirmed."""
        return bool(self.price_cents and self.price_cents > 0)
