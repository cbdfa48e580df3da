"""Inbound billing provider event models."""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class EventType(str, Enum):
    """Provider event types the synchronizer acts on."""

    CHECKOUT_SESSION_COMPLETED = "checkout.session.completed"
    SUBSCRIPTION_CREATED = "customer.subscription.created"
    SUBSCRIPTION_UPDATED = "customer.subscription.updated"
    SUBSCRIPTION_DELETED = "customer.subscription.deleted"
    INVOICE_PAID = "invoice.paid"
    INVOICE_PAYMENT_SUCCEEDED = "invoice.payment_succeeded"
    INVOICE_PAYMENT_FAILED = "invoice.payment_failed"


RELEVANT_EVENT_TYPES = frozenset(event_type.value for event_type in EventType)

SUBSCRIPTION_EVENT_TYPES = frozenset(
    {
        EventType.SUBSCRIPTION_CREATED.value,
        EventType.SUBSCRIPTION_UPDATED.value,
        EventType.SUBSCRIPTION_DELETED.value,
    }
)

INVOICE_EVENT_TYPES = frozenset(
    {
        EventType.INVOICE_PAID.value,
        EventType.INVOICE_PAYMENT_SUCCEEDED.value,
        EventType.INVOICE_PAYMENT_FAILED.value,
    }
)


def is_relevant(event_type: str) -> bool:
    return event_type in RELEVANT_EVENT_TYPES


class InboundEvent(BaseModel):
    """A verified provider event."""

    event_id: str = Field(..., description="Provider-assigned, globally unique event id")
    type: str = Field(..., description="Event type, e.g. customer.subscription.updated")
    payload: dict[str, Any] = Field(default_factory=dict, description="The event's data.object")
    received_at: datetime = Field(..., description="When the receiver accepted the request")

    @property
    def is_relevant(self) -> bool:
        return is_relevant(self.type)

    class Config:
        json_schema_extra = {
            "example": {
                "event_id": "evt_1PqRsTuVwXyZ",
                "type": "customer.subscription.updated",
                "payload": {"id": "sub_1PqRsT", "object": "subscription", "status": "active"},
                "received_at": "2026-10-17T12:00:00Z",
            }
        }
