import typing as t

from django.conf import settings
from django.db import models
from django.db.models import Q

from common.models import TimeStampedModel


class ClubQuerySet(models.QuerySet["Club"]):
    def with_organizer(self) -> t.Self:
        """Select the organizer along with the club."""
        return self.select_related("organizer")


class ClubManager(models.Manager["Club"]):
    def get_queryset(self) -> ClubQuerySet:
        """Get base queryset for clubs."""
        return ClubQuerySet(self.model, using=self._db)

    def with_organizer(self) -> ClubQuerySet:
        """Returns a queryset with the organizer selected."""
        return self.get_queryset().with_organizer()


class Club(TimeStampedModel):
    name = models.CharField(max_length=120)
    description = models.TextField(blank=True, default="")
    organizer = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="organized_clubs")
    membership_price_cents = models.PositiveIntegerField(null=True, blank=True)
    stripe_product_id = models.CharField(max_length=255, null=True, blank=True)
    stripe_price_id = models.CharField(max_length=255, null=True, blank=True)

    objects = ClubManager()

    class Meta:
        ordering = ["name"]

    def __str__(self) -> str:
        return self.name

    @property
    def is_paid(self) -> bool:
        """A club is paid when joining it takes a membership subscription."""
        return bool(self.membership_price_cents)


class MembershipQuerySet(models.QuerySet["Membership"]):
    def active(self) -> t.Self:
        """Memberships that currently grant access."""
        return self.filter(status=Membership.MembershipStatus.ACTIVE)


class Membership(TimeStampedModel):
    class MembershipStatus(models.TextChoices):
        ACTIVE = "active", "Active"
        INACTIVE = "inactive", "Inactive"

    class Role(models.TextChoices):
        MEMBER = "member", "Member"
        ORGANIZER = "organizer", "Organizer"

    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="memberships")
    club = models.ForeignKey(Club, on_delete=models.CASCADE, related_name="memberships")
    status = models.CharField(
        max_length=16, choices=MembershipStatus.choices, default=MembershipStatus.ACTIVE, db_index=True
    )
    role = models.CharField(max_length=16, choices=Role.choices, default=Role.MEMBER)
    stripe_subscription_id = models.CharField(max_length=255, null=True, blank=True, db_index=True)
    current_period_end = models.DateTimeField(null=True, blank=True)

    objects = MembershipQuerySet.as_manager()

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=["user", "club"], name="unique_membership_user_club"),
        ]

    def __str__(self) -> str:
        return f"{self.user_id} in {self.club_id} ({self.status})"

    @classmethod
    def is_active_member(cls, user_id: t.Any, club_id: t.Any) -> bool:
        """True if the user holds an active membership of the club."""
        return cls.objects.filter(Q(user_id=user_id) & Q(club_id=club_id)).active().exists()
