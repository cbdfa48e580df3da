"""Configuration models loaded from config/billing.yaml."""

from typing import Optional

from pydantic import BaseModel, Field


class AppSettings(BaseModel):
    """Public application URLs used for provider redirects."""

    base_url: str = Field(default="http://localhost:3000", description="Public base URL of the web app")
    checkout_success_path: str = Field(default="/dashboard?success=true&payment=completed")
    checkout_cancel_path: str = Field(default="/dashboard?canceled=true")
    portal_return_path: str = Field(default="/dashboard")


class PlanSettings(BaseModel):
    """The single paid plan offered by the product."""

    product_name: str = Field(default="The Menu Guide Premium", description="Checkout line item name")
    description: str = Field(
        default="Unlock public menus, QR codes, and advanced features",
        description="Checkout line item description",
    )
    price_id: Optional[str] = Field(None, description="Provider price id; inline price data is used if unset")
    amount: int = Field(default=1800, description="Price in minor currency units")
    currency: str = Field(default="usd", description="ISO 4217 currency code")
    interval: str = Field(default="month", description="Billing interval: month or year")

    class Config:
        json_schema_extra = {
            "example": {
                "product_name": "The Menu Guide Premium",
                "price_id": "price_1PqRsT",
                "amount": 1800,
                "currency": "usd",
                "interval": "month",
            }
        }


class ProviderSettings(BaseModel):
    """Billing provider client behaviour."""

    timeout_seconds: float = Field(default=10.0, gt=0, description="Per-request network timeout")


class IdempotencySettings(BaseModel):
    """Processed-event marker storage."""

    backend: str = Field(default="memory", description="'memory' (single instance) or 'redis'")
    retention_hours: int = Field(default=24, gt=0, description="How long markers are kept")
    cleanup_interval_seconds: int = Field(default=3600, gt=0, description="In-process cleanup cadence")
    redis_url: Optional[str] = Field(None, description="Redis URL when backend is 'redis'")
    key_prefix: str = Field(default="billing:event:", description="Redis key prefix")


class AuthSettings(BaseModel):
    """Bearer token verification."""

    jwt_algorithm: str = Field(default="HS256")
    jwt_audience: Optional[str] = Field(default="authenticated", description="Expected 'aud' claim")


class SweepSettings(BaseModel):
    """Expiry sweep behaviour."""

    refetch_from_provider: bool = Field(
        default=True, description="Fetch a fresh snapshot per expired row before demoting"
    )


class BillingConfig(BaseModel):
    """Complete billing.yaml configuration."""

    app: AppSettings = Field(default_factory=AppSettings)
    plan: PlanSettings = Field(default_factory=PlanSettings)
    provider: ProviderSettings = Field(default_factory=ProviderSettings)
    idempotency: IdempotencySettings = Field(default_factory=IdempotencySettings)
    auth: AuthSettings = Field(default_factory=AuthSettings)
    sweep: SweepSettings = Field(default_factory=SweepSettings)
