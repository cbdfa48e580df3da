"""Provider-side views: subscription snapshot, invoice and customer.

Snapshots are ephemeral. They are fetched per operation, fed to the resolver,
and never persisted as-is.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from .profile import CanonicalStatus


class ProviderStatus(str, Enum):
    """Subscription lifecycle statuses reported by the billing provider."""

    ACTIVE = "active"
    TRIALING = "trialing"
    CANCELED = "canceled"
    PAST_DUE = "past_due"
    UNPAID = "unpaid"
    INCOMPLETE = "incomplete"
    INCOMPLETE_EXPIRED = "incomplete_expired"
    PAUSED = "paused"


class ProviderSubscriptionSnapshot(BaseModel):
    """Point-in-time copy of the provider's subscription object."""

    id: str = Field(..., description="Provider subscription id")
    status: str = Field(..., description="Provider lifecycle status (see ProviderStatus)")
    customer_id: Optional[str] = Field(None, description="Provider customer id")

    current_period_start: Optional[datetime] = Field(None, description="Start of current period")
    current_period_end: Optional[datetime] = Field(None, description="End of current period")
    cancel_at_period_end: bool = Field(default=False, description="Cancellation scheduled at period end")
    canceled_at: Optional[datetime] = Field(None, description="When cancellation was requested")

    trial_start: Optional[datetime] = Field(None, description="Trial start")
    trial_end: Optional[datetime] = Field(None, description="Trial end")

    price_id: Optional[str] = Field(None, description="Price of the first subscription item")
    unit_amount: Optional[int] = Field(None, description="Price in minor currency units")
    currency: Optional[str] = Field(None, description="ISO 4217 currency code, lower case")
    interval: Optional[str] = Field(None, description="Billing interval (month, year)")

    metadata_profile_id: Optional[str] = Field(None, description="Profile id stamped at checkout")
    fetched_at: datetime = Field(..., description="When this snapshot was received from the provider")

    class Config:
        json_schema_extra = {
            "example": {
                "id": "sub_1PqRsT",
                "status": "active",
                "customer_id": "cus_Q2x9ZkLm",
                "current_period_end": "2026-11-17T00:00:00Z",
                "cancel_at_period_end": False,
                "unit_amount": 1800,
                "currency": "usd",
                "interval": "month",
                "fetched_at": "2026-10-17T12:00:00Z",
            }
        }


class InvoiceSummary(BaseModel):
    """Most recent open invoice, used for the billing forecast."""

    id: str
    amount_due: int = Field(..., description="Amount due in minor currency units")
    currency: Optional[str] = None
    period_end: Optional[datetime] = None


class CustomerSummary(BaseModel):
    """Provider customer record."""

    id: str
    email: Optional[str] = None
    name: Optional[str] = None
    deleted: bool = False


class ResolvedStatus(BaseModel):
    """Output of the subscription state resolver."""

    canonical_status: CanonicalStatus
    is_public: bool
    canceled_at: Optional[datetime] = None

    class Config:
        frozen = True
