"""API response models for the webhook, reconciliation and job endpoints."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from .profile import CanonicalStatus, SubscriptionRecord


class WebhookAck(BaseModel):
    """Acknowledgement returned to the billing provider."""

    received: bool = Field(default=True)


class SubscriptionStatusResponse(BaseModel):
    """Canonical fields after a manual sync, cancel or reactivate."""

    success: bool = Field(default=True)
    message: str = Field(..., description="Human-readable outcome")
    subscription_status: CanonicalStatus
    is_public: bool
    subscription_id: Optional[str] = None
    customer_id: Optional[str] = None
    current_period_end: Optional[datetime] = None
    cancel_at_period_end: bool = False
    canceled_at: Optional[datetime] = None

    @classmethod
    def from_record(cls, record: SubscriptionRecord, message: str) -> "SubscriptionStatusResponse":
        return cls(
            message=message,
            subscription_status=record.canonical_status,
            is_public=record.is_public,
            subscription_id=record.provider_subscription_id,
            customer_id=record.provider_customer_id,
            current_period_end=record.current_period_end,
            cancel_at_period_end=record.cancel_at_period_end,
            canceled_at=record.canceled_at,
        )

    class Config:
        json_schema_extra = {
            "example": {
                "success": True,
                "message": "Your subscription has been canceled and will end at the end of your current billing period.",
                "subscription_status": "pro",
                "is_public": True,
                "subscription_id": "sub_1PqRsT",
                "customer_id": "cus_Q2x9ZkLm",
                "current_period_end": "2026-11-17T00:00:00Z",
                "cancel_at_period_end": True,
                "canceled_at": None,
            }
        }


class SubscriptionDetail(BaseModel):
    """Display projection of the provider subscription, invoice and customer."""

    id: str
    status: str
    current_period_start: Optional[datetime] = None
    current_period_end: Optional[datetime] = None

    # Pricing
    amount: int = 0
    currency: str = "usd"
    interval: str = "month"
    formatted_amount: str

    # Cancellation
    cancel_at_period_end: bool = False
    canceled_at: Optional[datetime] = None

    # Customer
    customer_email: str = ""
    customer_name: Optional[str] = None

    # Next billing forecast, null when there is no open invoice
    next_billing_date: Optional[datetime] = None
    next_billing_amount: Optional[int] = None
    formatted_next_billing_amount: Optional[str] = None

    # Trial
    trial_start: Optional[datetime] = None
    trial_end: Optional[datetime] = None

    # Derived flags
    is_active: bool = False
    is_trialing: bool = False
    is_canceled: bool = False
    is_past_due: bool = False
    is_unpaid: bool = False

    days_until_renewal: Optional[int] = None
    days_until_cancellation: Optional[int] = None


class SubscriptionDetailResponse(BaseModel):
    subscription: SubscriptionDetail


class SweepResponse(BaseModel):
    """Result of one expiry sweep run."""

    message: str
    updated: int = Field(..., description="Number of demoted records")
    demoted_profile_ids: list[str] = Field(default_factory=list)
    failed_profile_ids: list[str] = Field(default_factory=list)
    checked: int = Field(default=0, description="Number of expired candidates examined")


class SweepPreviewEntry(BaseModel):
    profile_id: str
    status: str = Field(..., description="'active' or 'expired'")
    days_until_expiry: Optional[int] = None
    subscription_end: Optional[datetime] = None


class SweepPreviewResponse(BaseModel):
    profiles: list[SweepPreviewEntry] = Field(default_factory=list)
    total: int = 0
    expired: int = 0
    active: int = 0


class CleanupResponse(BaseModel):
    purged: int


class CheckoutSessionResponse(BaseModel):
    session_id: str
    url: Optional[str] = None


class PortalSessionResponse(BaseModel):
    url: str


class ErrorResponse(BaseModel):
    """Structured error body."""

    error: str = Field(..., description="Stable error code")
    message: str = Field(..., description="User-facing message")
    retryable: bool = Field(default=False, description="Whether retrying may succeed")

    class Config:
        json_schema_extra = {
            "example": {
                "error": "provider_unavailable",
                "message": "The billing provider is temporarily unavailable. Please retry.",
                "retryable": True,
            }
        }
