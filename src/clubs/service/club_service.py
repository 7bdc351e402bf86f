"""Club membership lifecycle: joining via subscription, leaving, and club deletion."""

import typing as t
import uuid
from datetime import datetime

import stripe
import structlog
from django.db import transaction
from django.http import HttpRequest
from django.utils.translation import gettext as _
from ninja.errors import HttpError
from pydantic import BaseModel

from accounts.models import ClubUser
from clubs.models import Club, Membership
from common.audit import log_audit_event
from common.utils import upsert_unique

logger = structlog.get_logger(__name__)

# Subscription statuses that grant access to the club
ACTIVE_SUBSCRIPTION_STATUSES = frozenset({"active", "trialing"})


class CleanupOutcome(BaseModel):
    """Result of a local operation whose provider-side cleanup is best-effort.

    The local change always happens; ``warnings`` lists the provider calls that failed and
    may need manual follow-up.
    """

    warnings: list[str] = []

    @property
    def cleanup_failed(self) -> bool:
        return bool(self.warnings)


def membership_status_for(subscription_status: str | None) -> Membership.MembershipStatus:
    if subscription_status in ACTIVE_SUBSCRIPTION_STATUSES:
        return Membership.MembershipStatus.ACTIVE
    return Membership.MembershipStatus.INACTIVE


def upsert_membership(
    user_id: uuid.UUID,
    club_id: uuid.UUID,
    *,
    status: Membership.MembershipStatus,
    stripe_subscription_id: str | None = None,
    current_period_end: datetime | None = None,
) -> Membership | None:
    """Create or update the single membership of a user in a club.

    Returns None, without writing, when the user or the club no longer exists.
    """
    if not Club.objects.filter(pk=club_id).exists() or not ClubUser.objects.filter(pk=user_id).exists():
        logger.warning("membership_upsert_unknown_target", user_id=str(user_id), club_id=str(club_id))
        return None

    fields: dict[str, t.Any] = {"status": status}
    if stripe_subscription_id:
        fields["stripe_subscription_id"] = stripe_subscription_id
    if current_period_end:
        fields["current_period_end"] = current_period_end

    membership, created = upsert_unique(Membership, {"user_id": user_id, "club_id": club_id}, fields)
    logger.info(
        "membership_upserted",
        user_id=str(user_id),
        club_id=str(club_id),
        status=status,
        created=created,
    )
    return membership


def _cancel_subscription(subscription_id: str, outcome: CleanupOutcome, **log_context: t.Any) -> None:
    try:
        stripe.Subscription.cancel(subscription_id)
    except stripe.error.StripeError:
        logger.exception("stripe_subscription_cancel_failed", subscription_id=subscription_id, **log_context)
        outcome.warnings.append(
            _("Subscription %(subscription)s could not be cancelled with the payment provider.")
            % {"subscription": subscription_id}
        )


@transaction.atomic
def leave_club(club: Club, user: ClubUser) -> CleanupOutcome:
    """Deactivate the user's membership, cancelling its subscription when there is one."""
    if club.organizer_id == user.pk:
        raise HttpError(400, str(_("The organizer cannot leave their own club.")))

    membership = Membership.objects.select_for_update().filter(user=user, club=club).first()
    if membership is None:
        raise HttpError(404, str(_("You are not a member of this club.")))

    outcome = CleanupOutcome()
    if membership.stripe_subscription_id and membership.status == Membership.MembershipStatus.ACTIVE:
        _cancel_subscription(membership.stripe_subscription_id, outcome, club_id=str(club.pk), user_id=str(user.pk))

    membership.status = Membership.MembershipStatus.INACTIVE
    membership.save(update_fields=["status", "updated_at"])
    logger.info("membership_left", club_id=str(club.pk), user_id=str(user.pk), warnings=len(outcome.warnings))
    return outcome


@transaction.atomic
def delete_club(club: Club, actor: ClubUser, request: HttpRequest | None = None) -> CleanupOutcome:
    """Delete a club and everything in it, cancelling active member subscriptions first."""
    outcome = CleanupOutcome()
    subscriptions = (
        Membership.objects.active()
        .filter(club=club, stripe_subscription_id__isnull=False)
        .values_list("stripe_subscription_id", flat=True)
    )
    for subscription_id in subscriptions:
        _cancel_subscription(subscription_id, outcome, club_id=str(club.pk))

    club_id = club.pk
    log_audit_event(
        actor=actor,
        action="club.delete",
        target_type="club",
        target_id=club_id,
        metadata={"name": club.name, "warnings": outcome.warnings},
        request=request,
    )
    club.delete()
    logger.info("club_deleted", club_id=str(club_id), warnings=len(outcome.warnings))
    return outcome
