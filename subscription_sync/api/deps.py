"""FastAPI dependencies wiring services to their collaborators."""

from typing import Optional

from fastapi import Depends, Header

from subscription_sync.config import get_config
from subscription_sync.errors import NotConfigured, Unauthenticated
from subscription_sync.logging_config import bind_context, get_logger
from subscription_sync.repositories.idempotency_store import get_idempotency_store
from subscription_sync.repositories.profile_store import get_profile_store
from subscription_sync.services.auth import Principal, get_token_verifier, parse_bearer
from subscription_sync.services.billing_provider import BillingProvider, get_billing_provider
from subscription_sync.services.checkout import CheckoutService
from subscription_sync.services.detail_projector import DetailProjector
from subscription_sync.services.expiry_sweep import ExpirySweep
from subscription_sync.services.reconciliation import ReconciliationService
from subscription_sync.services.synchronizer import get_synchronizer
from subscription_sync.services.webhook_receiver import WebhookReceiver

logger = get_logger(__name__)


def provide_billing_provider() -> BillingProvider:
    return get_billing_provider()


def provide_optional_billing_provider() -> Optional[BillingProvider]:
    try:
        return get_billing_provider()
    except NotConfigured:
        return None


def get_current_principal(authorization: Optional[str] = Header(None)) -> Principal:
    """Authenticate the caller from the Authorization header.

    Raises:
        Unauthenticated: Missing or invalid bearer token
    """
    token = parse_bearer(authorization)
    if token is None:
        raise Unauthenticated()
    principal = get_token_verifier().verify(token)
    bind_context(profile_id=principal.profile_id)
    return principal


def require_cron_secret(authorization: Optional[str] = Header(None)) -> None:
    """Guard scheduled-job endpoints with CRON_SECRET when one is configured."""
    secret = get_config().cron_secret
    if secret is None:
        logger.warning("cron_secret_not_configured")
        return
    if parse_bearer(authorization) != secret:
        raise Unauthenticated()


def provide_webhook_receiver(provider: BillingProvider = Depends(provide_billing_provider)) -> WebhookReceiver:
    return WebhookReceiver(
        provider=provider,
        idempotency_store=get_idempotency_store(),
        synchronizer=get_synchronizer(),
        profile_store=get_profile_store(),
    )


def provide_reconciliation(
    provider: BillingProvider = Depends(provide_billing_provider),
) -> ReconciliationService:
    return ReconciliationService(provider=provider, synchronizer=get_synchronizer(), profile_store=get_profile_store())


def provide_checkout(provider: BillingProvider = Depends(provide_billing_provider)) -> CheckoutService:
    return CheckoutService(provider=provider, profile_store=get_profile_store(), config=get_config())


def provide_detail_projector(provider: BillingProvider = Depends(provide_billing_provider)) -> DetailProjector:
    return DetailProjector(provider=provider, profile_store=get_profile_store())


def provide_expiry_sweep(
    provider: Optional[BillingProvider] = Depends(provide_optional_billing_provider),
) -> ExpirySweep:
    return ExpirySweep(
        synchronizer=get_synchronizer(),
        profile_store=get_profile_store(),
        provider=provider,
        refetch_from_provider=get_config().sweep.refetch_from_provider,
    )
