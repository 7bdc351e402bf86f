from uuid import UUID

from ninja_extra import api_controller, route

from clubs import schema
from clubs.models import Club
from clubs.service import club_service, stripe_service
from common.authentication import ProvisioningJWTAuth
from common.throttling import CheckoutThrottle, PricingThrottle, WriteThrottle

from .base import ClubScopedController
from .permissions import IsClubOrganizer


@api_controller("/clubs", auth=ProvisioningJWTAuth(), tags=["Clubs"], throttle=WriteThrottle())
class ClubController(ClubScopedController):
    @route.post(
        "/{club_id}/pricing",
        url_name="set_club_price",
        response=schema.ClubSchema,
        permissions=[IsClubOrganizer()],
        throttle=PricingThrottle(),
    )
    def set_price(self, club_id: UUID, payload: schema.ClubPricingSchema) -> Club:
        """Set the monthly membership price of your club."""
        club = self.get_club(club_id)
        return stripe_service.set_club_price(
            club,
            payload.price_cents,
            actor=self.user(),
            request=self.context.request,  # type: ignore[arg-type]
        )

    @route.post(
        "/{club_id}/membership/checkout",
        url_name="membership_checkout",
        response=schema.CheckoutResponseSchema,
        throttle=CheckoutThrottle(),
    )
    def membership_checkout(self, club_id: UUID) -> schema.CheckoutResponseSchema:
        """Start a membership subscription. Redirect the user to the returned URL."""
        club = self.get_club(club_id)
        checkout_url = stripe_service.create_membership_checkout_session(club, self.user())
        return schema.CheckoutResponseSchema(checkout_url=checkout_url)

    @route.post(
        "/{club_id}/membership/portal",
        url_name="membership_portal",
        response=schema.StripeLinkSchema,
        throttle=CheckoutThrottle(),
    )
    def membership_portal(self, club_id: UUID) -> schema.StripeLinkSchema:
        """Get a link to the billing portal for your membership subscription in this club."""
        club = self.get_club(club_id)
        return schema.StripeLinkSchema(url=stripe_service.create_billing_portal_session(club, self.user()))

    @route.post("/{club_id}/leave", url_name="leave_club", response=schema.CleanupResponseSchema)
    def leave(self, club_id: UUID) -> schema.CleanupResponseSchema:
        """Leave a club, cancelling your membership subscription.

        The membership ends even if the payment provider could not be reached; `warnings`
        then lists what needs follow-up.
        """
        club = self.get_club(club_id)
        outcome = club_service.leave_club(club, self.user())
        return schema.CleanupResponseSchema(warnings=outcome.warnings)

    @route.delete(
        "/{club_id}",
        url_name="delete_club",
        response=schema.CleanupResponseSchema,
        permissions=[IsClubOrganizer()],
    )
    def delete(self, club_id: UUID) -> schema.CleanupResponseSchema:
        """Delete your club, its events and registrations, cancelling member subscriptions."""
        club = self.get_club(club_id)
        outcome = club_service.delete_club(
            club,
            actor=self.user(),
            request=self.context.request,  # type: ignore[arg-type]
        )
        return schema.CleanupResponseSchema(warnings=outcome.warnings)
