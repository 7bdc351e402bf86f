from uuid import UUID

from django.db.models import QuerySet
from ninja import Query
from ninja_extra import api_controller, route
from ninja_extra.pagination import PageNumberPaginationExtra, PaginatedResponseSchema, paginate

from clubs import filters, schema
from clubs.models import Event, EventRSVP
from clubs.service import approval_service, capacity, stripe_service
from clubs.service.approval_service import BulkDecisionOutcome, DecisionOutcome
from clubs.service.registration.enums import Decision
from common.authentication import ProvisioningJWTAuth
from common.throttling import ApprovalThrottle, PricingThrottle, UserDefaultThrottle, WriteThrottle

from .base import ClubScopedController
from .permissions import IsClubOrganizer


@api_controller(
    "/clubs/{club_id}/events/{event_id}",
    auth=ProvisioningJWTAuth(),
    permissions=[IsClubOrganizer()],
    tags=["Event Admin"],
    throttle=WriteThrottle(),
)
class EventAdminController(ClubScopedController):
    """Organizer endpoints for approvals, registrations, pricing and capacity."""

    @route.get(
        "/requests",
        url_name="list_pending_requests",
        response=list[schema.PendingRequestSchema],
        throttle=UserDefaultThrottle(),
    )
    def list_pending(self, club_id: UUID, event_id: UUID) -> QuerySet[EventRSVP]:
        """List the registrations awaiting your approval, oldest first."""
        event = self.get_event(club_id, event_id)
        return approval_service.list_pending(event)

    @route.post(
        "/requests/bulk",
        url_name="bulk_decide_requests",
        response=schema.BulkDecisionResponseSchema,
        throttle=ApprovalThrottle(),
    )
    def bulk_decide(
        self, club_id: UUID, event_id: UUID, payload: schema.BulkDecisionSchema
    ) -> schema.BulkDecisionResponseSchema:
        """Approve or reject many requests at once.

        Requests that are no longer pending are skipped; `updated_count` says how many changed.
        """
        event = self.get_event(club_id, event_id)
        outcome: BulkDecisionOutcome = approval_service.bulk_decide(
            event,
            payload.user_ids,
            payload.action,
            decided_by=self.user(),
            reason=payload.rejection_reason if payload.action == Decision.REJECT else None,
            request=self.context.request,  # type: ignore[union-attr]
        )
        return schema.BulkDecisionResponseSchema(status=outcome.decision, updated_count=outcome.updated_count)

    @route.post(
        "/requests/{user_id}/approve",
        url_name="approve_request",
        response=schema.DecisionResponseSchema,
        throttle=ApprovalThrottle(),
    )
    def approve(self, club_id: UUID, event_id: UUID, user_id: UUID) -> DecisionOutcome:
        """Approve a pending request.

        Free events confirm the member right away; paid events move them on to payment.
        """
        event = self.get_event(club_id, event_id)
        return approval_service.approve(
            event,
            user_id,
            decided_by=self.user(),
            request=self.context.request,  # type: ignore[arg-type]
        )

    @route.post(
        "/requests/{user_id}/reject",
        url_name="reject_request",
        response=schema.DecisionResponseSchema,
        throttle=ApprovalThrottle(),
    )
    def reject(
        self, club_id: UUID, event_id: UUID, user_id: UUID, payload: schema.RejectRequestSchema
    ) -> DecisionOutcome:
        """Reject a pending request, optionally with a reason shown to the member."""
        event = self.get_event(club_id, event_id)
        return approval_service.reject(
            event,
            user_id,
            decided_by=self.user(),
            reason=payload.reason,
            request=self.context.request,  # type: ignore[arg-type]
        )

    @route.get(
        "/registrations",
        url_name="list_registrations",
        response=PaginatedResponseSchema[schema.RegistrationSchema],
        throttle=UserDefaultThrottle(),
    )
    @paginate(PageNumberPaginationExtra, page_size=20)
    def list_registrations(
        self,
        club_id: UUID,
        event_id: UUID,
        params: filters.RegistrationFilterSchema = Query(...),  # type: ignore[type-arg]
    ) -> QuerySet[EventRSVP]:
        """List every registration of the event, optionally filtered by status."""
        event = self.get_event(club_id, event_id)
        return approval_service.list_registrations(event, status=params.status)

    @route.post(
        "/pricing",
        url_name="set_event_price",
        response=schema.EventSchema,
        throttle=PricingThrottle(),
    )
    def set_price(self, club_id: UUID, event_id: UUID, payload: schema.EventPricingSchema) -> Event:
        """Set the event's price, or clear it to make the event free.

        Not allowed once anyone is confirmed.
        """
        event = self.get_event(club_id, event_id)
        return stripe_service.set_event_price(
            event,
            payload.price_cents,
            actor=self.user(),
            request=self.context.request,  # type: ignore[arg-type]
        )

    @route.patch("/capacity", url_name="set_event_capacity", response=schema.EventSchema)
    def set_capacity(self, club_id: UUID, event_id: UUID, payload: schema.EventCapacitySchema) -> Event:
        """Change the seat limit. It cannot go below the seats already held."""
        event = self.get_event(club_id, event_id)
        return capacity.update_max_capacity(event, payload.max_capacity)
