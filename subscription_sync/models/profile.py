"""Internal subscription record embedded in a restaurant profile.

The record is the only place the application stores entitlement. It is
written exclusively through ``ProfileSynchronizer``.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, model_validator


class CanonicalStatus(str, Enum):
    """Internal tri-state entitlement derived from the billing provider."""

    FREE = "free"  # Never subscribed, or provider state carries no entitlement
    PRO = "pro"  # Paid, trialing, or inside the cancellation grace period
    CANCELED = "canceled"  # Ended, unpaid or past due


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SubscriptionRecord(BaseModel):
    """Internal subscription record for one profile."""

    profile_id: str = Field(..., description="Primary key of the owning profile")

    # Provider references, populated on first successful checkout
    provider_customer_id: Optional[str] = Field(None, description="Billing provider customer id")
    provider_subscription_id: Optional[str] = Field(None, description="Billing provider subscription id")

    # Entitlement
    canonical_status: CanonicalStatus = Field(default=CanonicalStatus.FREE, description="Derived status")
    is_public: bool = Field(default=False, description="Whether the owner's menu is publicly visible")

    # Period and cancellation
    current_period_end: Optional[datetime] = Field(None, description="End of the paid period")
    cancel_at_period_end: bool = Field(default=False, description="Cancellation scheduled at period end")
    canceled_at: Optional[datetime] = Field(None, description="When the record entered canceled")

    # Bookkeeping for optimistic concurrency
    version: int = Field(default=0, description="Incremented on every applied write")
    synced_at: Optional[datetime] = Field(
        None, description="Fetch time of the provider snapshot the current state came from"
    )
    updated_at: datetime = Field(default_factory=_utc_now, description="Last write time")

    @model_validator(mode="after")
    def _visibility_follows_status(self) -> "SubscriptionRecord":
        if self.is_public != (self.canonical_status == CanonicalStatus.PRO):
            raise ValueError(
                f"is_public={self.is_public} contradicts canonical_status={self.canonical_status.value}"
            )
        return self

    @property
    def has_provider_subscription(self) -> bool:
        return bool(self.provider_subscription_id)

    class Config:
        json_schema_extra = {
            "example": {
                "profile_id": "6a0f3c1e-8f6e-4b8e-9d43-2f7f8f1d2c11",
                "provider_customer_id": "cus_Q2x9ZkLm",
                "provider_subscription_id": "sub_1PqRsT",
                "canonical_status": "pro",
                "is_public": True,
                "current_period_end": "2026-11-17T00:00:00Z",
                "cancel_at_period_end": False,
                "canceled_at": None,
                "version": 3,
            }
        }
