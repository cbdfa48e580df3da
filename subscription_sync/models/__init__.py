"""Pydantic models for domain records, provider snapshots, events and API bodies."""

# Configuration models
from .settings import (
    AppSettings,
    AuthSettings,
    BillingConfig,
    IdempotencySettings,
    PlanSettings,
    ProviderSettings,
    SweepSettings,
)

# Internal record
from .profile import (
    CanonicalStatus,
    SubscriptionRecord,
)

# Provider views
from .snapshot import (
    CustomerSummary,
    InvoiceSummary,
    ProviderStatus,
    ProviderSubscriptionSnapshot,
    ResolvedStatus,
)

# Inbound events
from .events import (
    RELEVANT_EVENT_TYPES,
    EventType,
    InboundEvent,
)

# API responses
from .api_response import (
    CheckoutSessionResponse,
    CleanupResponse,
    ErrorResponse,
    PortalSessionResponse,
    SubscriptionDetail,
    SubscriptionDetailResponse,
    SubscriptionStatusResponse,
    SweepPreviewEntry,
    SweepPreviewResponse,
    SweepResponse,
    WebhookAck,
)

__all__ = [
    # Configuration
    "AppSettings",
    "AuthSettings",
    "BillingConfig",
    "IdempotencySettings",
    "PlanSettings",
    "ProviderSettings",
    "SweepSettings",
    # Record
    "CanonicalStatus",
    "SubscriptionRecord",
    # Provider
    "CustomerSummary",
    "InvoiceSummary",
    "ProviderStatus",
    "ProviderSubscriptionSnapshot",
    "ResolvedStatus",
    # Events
    "RELEVANT_EVENT_TYPES",
    "EventType",
    "InboundEvent",
    # API responses
    "CheckoutSessionResponse",
    "CleanupResponse",
    "ErrorResponse",
    "PortalSessionResponse",
    "SubscriptionDetail",
    "SubscriptionDetailResponse",
    "SubscriptionStatusResponse",
    "SweepPreviewEntry",
    "SweepPreviewResponse",
    "SweepResponse",
    "WebhookAck",
]
