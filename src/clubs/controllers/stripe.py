import orjson
import pydantic
import stripe
import structlog
from django.conf import settings
from django.http import HttpRequest, HttpResponseRedirect
from ninja.errors import HttpError
from ninja_extra import ControllerBase, api_controller, route

from accounts.models import ClubUser
from clubs import schema
from clubs.schema.stripe_events import parse_stripe_event
from clubs.service import stripe_service, stripe_webhooks
from common.authentication import ProvisioningJWTAuth
from common.controllers import UserAwareController
from common.schema import ResponseOk
from common.throttling import WebhookThrottle, WriteThrottle

logger = structlog.get_logger(__name__)


@api_controller("/stripe", auth=None, tags=["Stripe"])
class StripeWebhookController(ControllerBase):
    @route.post("/webhook", url_name="stripe_webhook", response={200: ResponseOk}, throttle=WebhookThrottle())
    def handle_webhook(self, request: HttpRequest) -> tuple[int, ResponseOk]:
        """Receive Stripe events.

        The signature is checked against the raw body before anything else. A handler failure
        answers 500 so Stripe redelivers the event.
        """
        payload = request.body
        sig_header = request.META.get("HTTP_STRIPE_SIGNATURE")
        if not sig_header:
            raise HttpError(400, "Invalid Stripe signature")

        try:
            stripe.Webhook.construct_event(payload, sig_header, settings.STRIPE_WEBHOOK_SECRET)
        except (ValueError, stripe.error.SignatureVerificationError) as e:
            logger.warning("stripe_webhook_invalid_signature")
            raise HttpError(400, "Invalid Stripe signature") from e

        try:
            data = orjson.loads(payload)
            if not isinstance(data, dict):
                raise ValueError("Webhook payload is not an object")
            event = parse_stripe_event(data)
        except (ValueError, pydantic.ValidationError) as e:
            logger.warning("stripe_webhook_invalid_payload", error=str(e))
            raise HttpError(400, "Invalid webhook payload") from e

        outcome = stripe_webhooks.StripeEventHandler(event).handle()
        if not outcome.processed:
            raise HttpError(500, "Webhook processing failed")
        return 200, ResponseOk()

    @route.get("/events/checkout/success", url_name="stripe_event_checkout_success", response={302: None})
    def event_checkout_success(self, session_id: str) -> HttpResponseRedirect:
        """Return point after an event checkout. Confirms the payment and redirects to the event."""
        return HttpResponseRedirect(stripe_webhooks.reconcile_event_checkout(session_id))

    @route.get("/checkout/success", url_name="stripe_membership_checkout_success", response={302: None})
    def membership_checkout_success(self, session_id: str) -> HttpResponseRedirect:
        """Return point after a membership checkout. Activates the membership and redirects to the club."""
        return HttpResponseRedirect(stripe_webhooks.reconcile_membership_checkout(session_id))


@api_controller("/stripe/connect", auth=ProvisioningJWTAuth(), tags=["Stripe"], throttle=WriteThrottle())
class StripeConnectController(UserAwareController):
    @route.post("/onboard", url_name="stripe_connect_onboard", response=schema.StripeLinkSchema)
    def onboard(self) -> schema.StripeLinkSchema:
        """Get a link to set up, or finish setting up, your payment account."""
        return schema.StripeLinkSchema(url=stripe_service.create_account_link(self.user()))

    @route.post("/refresh", url_name="stripe_connect_refresh", response=schema.ConnectStatusSchema)
    def refresh(self) -> ClubUser:
        """Refresh your payment account status after onboarding."""
        return stripe_service.sync_connect_status(self.user())

    @route.post("/dashboard", url_name="stripe_connect_dashboard", response=schema.StripeLinkSchema)
    def dashboard(self) -> schema.StripeLinkSchema:
        """Get a login link to your Stripe Express dashboard."""
        return schema.StripeLinkSchema(url=stripe_service.create_dashboard_link(self.user()))
