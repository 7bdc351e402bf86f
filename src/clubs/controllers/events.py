from uuid import UUID

from ninja_extra import api_controller, route

from clubs import schema
from clubs.models import EventRSVP
from clubs.service import stripe_service
from clubs.service.registration import RegistrationManager, RSVPResult
from common.authentication import ProvisioningJWTAuth
from common.throttling import CheckoutThrottle, WriteThrottle

from .base import ClubScopedController


@api_controller(
    "/clubs/{club_id}/events/{event_id}",
    auth=ProvisioningJWTAuth(),
    tags=["Event Registration"],
    throttle=WriteThrottle(),
)
class EventRegistrationController(ClubScopedController):
    """Registration endpoints for members."""

    @route.post("/rsvp", url_name="event_rsvp", response=schema.RSVPResponseSchema)
    def rsvp(self, club_id: UUID, event_id: UUID, payload: schema.RSVPRequestSchema) -> RSVPResult:
        """Say whether you are going to an event.

        Going to an event that needs approval or payment puts the registration in the matching
        pending status; `requires_approval` and `requires_payment` tell the client what comes next.
        Asking to go again while already registered returns the current registration unchanged.
        """
        event = self.get_event(club_id, event_id)
        return RegistrationManager(self.user(), event).rsvp(EventRSVP.RsvpStatus(payload.status))

    @route.post(
        "/checkout",
        url_name="event_checkout",
        response=schema.CheckoutResponseSchema,
        throttle=CheckoutThrottle(),
    )
    def checkout(self, club_id: UUID, event_id: UUID) -> schema.CheckoutResponseSchema:
        """Start paying for a registration that awaits payment.

        Redirect the user to the returned URL. The registration is confirmed once the payment
        provider reports success.
        """
        event = self.get_event(club_id, event_id)
        checkout_url = stripe_service.create_event_checkout_session(event, self.user())
        return schema.CheckoutResponseSchema(checkout_url=checkout_url)
