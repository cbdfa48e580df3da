"""Authenticated subscription endpoints for the profile owner.

Implements:
- POST /api/subscription/sync - Re-derive status from the provider
- POST /api/subscription/cancel - Cancel at period end
- POST /api/subscription/reactivate - Undo a scheduled cancellation
- GET /api/subscription/details - Billing detail view
- POST /api/subscription/checkout-session - Start a checkout
- POST /api/subscription/portal-session - Open the billing portal
"""

from fastapi import APIRouter, Depends

from subscription_sync.api.deps import (
    get_current_principal,
    provide_checkout,
    provide_detail_projector,
    provide_reconciliation,
)
from subscription_sync.logging_config import get_logger
from subscription_sync.models import (
    CheckoutSessionResponse,
    ErrorResponse,
    PortalSessionResponse,
    SubscriptionDetailResponse,
    SubscriptionStatusResponse,
)
from subscription_sync.services.auth import Principal
from subscription_sync.services.checkout import CheckoutService
from subscription_sync.services.detail_projector import DetailProjector
from subscription_sync.services.reconciliation import ReconciliationService

logger = get_logger(__name__)
router = APIRouter(tags=["Subscription"], prefix="/api/subscription")

ERROR_RESPONSES = {
    401: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    409: {"model": ErrorResponse},
    502: {"model": ErrorResponse},
    503: {"model": ErrorResponse},
}


@router.post(
    "/sync",
    response_model=SubscriptionStatusResponse,
    responses=ERROR_RESPONSES,
    summary="Sync subscription with provider",
)
def sync_subscription(
    principal: Principal = Depends(get_current_principal),
    service: ReconciliationService = Depends(provide_reconciliation),
) -> SubscriptionStatusResponse:
    """Refetch the caller's subscription and correct any drift.

    Raises:
        404: No subscription found for the caller
        502: Provider unavailable, retry later
    """
    logger.info("manual_sync_request")
    return service.sync(principal)


@router.post(
    "/cancel",
    response_model=SubscriptionStatusResponse,
    responses=ERROR_RESPONSES,
    summary="Cancel at period end",
)
def cancel_subscription(
    principal: Principal = Depends(get_current_principal),
    service: ReconciliationService = Depends(provide_reconciliation),
) -> SubscriptionStatusResponse:
    """Schedule cancellation. The profile stays pro until the period ends."""
    logger.info("cancel_subscription_request")
    return service.cancel(principal)


@router.post(
    "/reactivate",
    response_model=SubscriptionStatusResponse,
    responses=ERROR_RESPONSES,
    summary="Reactivate subscription",
)
def reactivate_subscription(
    principal: Principal = Depends(get_current_principal),
    service: ReconciliationService = Depends(provide_reconciliation),
) -> SubscriptionStatusResponse:
    """Undo a scheduled cancellation.

    Raises:
        409: Subscription already ended
    """
    logger.info("reactivate_subscription_request")
    return service.reactivate(principal)


@router.get(
    "/details",
    response_model=SubscriptionDetailResponse,
    responses=ERROR_RESPONSES,
    summary="Subscription details",
)
def subscription_details(
    principal: Principal = Depends(get_current_principal),
    projector: DetailProjector = Depends(provide_detail_projector),
) -> SubscriptionDetailResponse:
    return SubscriptionDetailResponse(subscription=projector.get_details(principal.profile_id))


@router.post(
    "/checkout-session",
    response_model=CheckoutSessionResponse,
    responses=ERROR_RESPONSES,
    summary="Create checkout session",
)
def create_checkout_session(
    principal: Principal = Depends(get_current_principal),
    service: CheckoutService = Depends(provide_checkout),
) -> CheckoutSessionResponse:
    logger.info("checkout_session_request")
    return service.create_checkout_session(principal)


@router.post(
    "/portal-session",
    response_model=PortalSessionResponse,
    responses=ERROR_RESPONSES,
    summary="Create billing portal session",
)
def create_portal_session(
    principal: Principal = Depends(get_current_principal),
    service: CheckoutService = Depends(provide_checkout),
) -> PortalSessionResponse:
    return service.create_portal_session(principal)
