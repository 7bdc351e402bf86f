import re
import uuid

from django.contrib.auth.models import AbstractUser, UserManager
from django.db import models


class ClubUserQueryset(models.QuerySet["ClubUser"]):
    """Queryset for ClubUser."""


class ClubUserManager(UserManager["ClubUser"]):
    def get_queryset(self) -> ClubUserQueryset:
        """Get queryset for ClubUser."""
        return ClubUserQueryset(self.model)


class ClubUser(AbstractUser):
    """A person known to the platform.

    Users are provisioned on their first authenticated request; ``external_id`` is the
    subject claim issued by the identity provider.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    external_id = models.CharField(
        max_length=255, unique=True, null=True, blank=True, help_text="Identity provider subject"
    )
    name = models.CharField(max_length=255, blank=True, help_text="Display name")
    stripe_customer_id = models.CharField(max_length=255, null=True, blank=True)
    stripe_connect_account_id = models.CharField(max_length=255, null=True, blank=True, db_index=True)
    stripe_connect_charges_enabled = models.BooleanField(default=False)
    stripe_connect_details_submitted = models.BooleanField(default=False)

    objects = ClubUserManager()  # type: ignore[misc]

    class Meta:
        ordering = ["username"]

    @property
    def display_name(self) -> str:
        """Display name."""
        return self.get_display_name()

    def get_display_name(self) -> str:
        """Returns the user's name, or their full name as a fallback."""
        return self.name or self.get_full_name() or re.sub(r"(\W|_)+", " ", self.username.split("@")[0]).title()

    @property
    def accepts_payments(self) -> bool:
        """True once the user's connected payment account can receive charges."""
        return bool(self.stripe_connect_account_id and self.stripe_connect_charges_enabled)
