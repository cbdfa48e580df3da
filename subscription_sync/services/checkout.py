"""Checkout and customer portal sessions."""

from subscription_sync.config import Config
from subscription_sync.errors import InvalidSubscriptionState, NoSubscription
from subscription_sync.logging_config import get_logger
from subscription_sync.models.api_response import CheckoutSessionResponse, PortalSessionResponse
from subscription_sync.models.profile import CanonicalStatus
from subscription_sync.repositories.profile_store import ProfileStore
from subscription_sync.services.auth import Principal
from subscription_sync.services.billing_provider import BillingProvider

logger = get_logger(__name__)


class CheckoutService:
    """Starts provider-hosted flows. State changes arrive later through webhooks."""

    def __init__(self, provider: BillingProvider, profile_store: ProfileStore, config: Config):
        self.provider = provider
        self.profile_store = profile_store
        self.config = config

    def create_checkout_session(self, principal: Principal) -> CheckoutSessionResponse:
        """Open a subscription checkout for the caller's profile.

        Raises:
            ProfileNotFound: Unknown profile
            InvalidSubscriptionState: Profile is already pro
        """
        record = self.profile_store.get(principal.profile_id)
        if record.canonical_status == CanonicalStatus.PRO:
            raise InvalidSubscriptionState("You already have an active subscription")

        app = self.config.billing.app
        base_url = self.config.app_base_url
        session_id, url = self.provider.create_checkout_session(
            profile_id=record.profile_id,
            plan=self.config.plan,
            success_url=f"{base_url}{app.checkout_success_path}",
            cancel_url=f"{base_url}{app.checkout_cancel_path}",
            customer_id=record.provider_customer_id,
            customer_email=principal.email,
        )
        return CheckoutSessionResponse(session_id=session_id, url=url)

    def create_portal_session(self, principal: Principal) -> PortalSessionResponse:
        """Open the provider's self-service billing portal.

        Raises:
            NoSubscription: Profile has never completed a checkout
        """
        record = self.profile_store.get(principal.profile_id)
        if not record.provider_customer_id:
            raise NoSubscription("No billing account found for this profile")

        return_url = f"{self.config.app_base_url}{self.config.billing.app.portal_return_path}"
        url = self.provider.create_portal_session(record.provider_customer_id, return_url)
        logger.info("portal_session_created", profile_id=record.profile_id)
        return PortalSessionResponse(url=url)
