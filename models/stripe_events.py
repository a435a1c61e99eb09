"""
Typed view of verified Stripe webhook payloads.

decode_event() must only be called on a payload whose signature has
already been checked. It maps the event type onto a closed set of
models; anything this service does not act on becomes UnknownEvent.
"""

import json
from datetime import datetime, timezone
from typing import Annotated, Any, Optional, Union

from pydantic import BaseModel, BeforeValidator, Field, ValidationError, field_validator

from services.billing_errors import WebhookPayloadError

EVENT_CHECKOUT_SESSION_COMPLETED = "checkout.session.completed"
EVENT_SUBSCRIPTION_CREATED = "customer.subscription.created"
EVENT_SUBSCRIPTION_UPDATED = "customer.subscription.updated"
EVENT_SUBSCRIPTION_DELETED = "customer.subscription.deleted"
EVENT_PAYMENT_METHOD_ATTACHED = "payment_method.attached"

CHECKOUT_MODE_SUBSCRIPTION = "subscription"
CHECKOUT_MODE_PAYMENT = "payment"
PAYMENT_STATUS_PAID = "paid"


def _reference_id(value: Any) -> Any:
    # Stripe sends related objects either as a bare id or expanded
    if isinstance(value, dict):
        return value.get("id")
    return value


StripeRef = Annotated[Optional[str], BeforeValidator(_reference_id)]


def from_unix(timestamp: Optional[int]) -> Optional[datetime]:
    """Epoch seconds to naive UTC, the form stored in the database."""
    if not timestamp:
        return None
    return datetime.fromtimestamp(int(timestamp), tz=timezone.utc).replace(tzinfo=None)


class _Metadata(BaseModel):
    metadata: dict[str, str] = Field(default_factory=dict)

    @field_validator("metadata", mode="before")
    @classmethod
    def empty_metadata(cls, value):
        if value is None:
            return {}
        return {str(k): str(v) for k, v in dict(value).items() if v is not None}


class Price(BaseModel):
    id: Optional[str] = None


class SubscriptionItem(BaseModel):
    price: Optional[Price] = None
    current_period_end: Optional[int] = None


class SubscriptionItemList(BaseModel):
    data: list[SubscriptionItem] = Field(default_factory=list)


class SubscriptionObject(_Metadata):
    id: str
    customer: StripeRef = None
    status: str
    current_period_end: Optional[int] = None
    cancel_at_period_end: bool = False
    items: Optional[SubscriptionItemList] = None

    def plan_id(self) -> str:
        """Price id of the first line item, empty when unavailable."""
        if self.items and self.items.data and self.items.data[0].price and self.items.data[0].price.id:
            return self.items.data[0].price.id
        return ""

    def period_end(self) -> Optional[datetime]:
        # Newer API versions only report the period on the items
        if self.current_period_end:
            return from_unix(self.current_period_end)
        if self.items and self.items.data:
            return from_unix(self.items.data[0].current_period_end)
        return None


class CheckoutSessionObject(_Metadata):
    id: str
    mode: Optional[str] = None
    payment_status: Optional[str] = None
    customer: StripeRef = None
    subscription: StripeRef = None


class PaymentMethodObject(BaseModel):
    id: str
    customer: StripeRef = None


class WebhookEvent(BaseModel):
    id: str
    type: str


class CheckoutSessionCompleted(WebhookEvent):
    session: CheckoutSessionObject


class SubscriptionChanged(WebhookEvent):
    """customer.subscription.created and customer.subscription.updated"""
    subscription: SubscriptionObject


class SubscriptionDeleted(WebhookEvent):
    subscription: SubscriptionObject


class PaymentMethodAttached(WebhookEvent):
    payment_method: PaymentMethodObject


class UnknownEvent(WebhookEvent):
    pass


StripeEvent = Union[
    CheckoutSessionCompleted,
    SubscriptionChanged,
    SubscriptionDeleted,
    PaymentMethodAttached,
    UnknownEvent,
]

# event type -> (model, attribute holding data.object)
_EVENT_MODELS = {
    EVENT_CHECKOUT_SESSION_COMPLETED: (CheckoutSessionCompleted, "session"),
    EVENT_SUBSCRIPTION_CREATED: (SubscriptionChanged, "subscription"),
    EVENT_SUBSCRIPTION_UPDATED: (SubscriptionChanged, "subscription"),
    EVENT_SUBSCRIPTION_DELETED: (SubscriptionDeleted, "subscription"),
    EVENT_PAYMENT_METHOD_ATTACHED: (PaymentMethodAttached, "payment_method"),
}


def decode_event(payload: Union[bytes, str]) -> StripeEvent:
    """
    Decode a verified webhook payload.

    Raises:
        WebhookPayloadError: malformed JSON, missing envelope fields, or a
            known event type whose object does not validate
    """
    try:
        if isinstance(payload, bytes):
            payload = payload.decode("utf-8")
        envelope = json.loads(payload)
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise WebhookPayloadError(f"Invalid webhook payload: {e}") from e

    if not isinstance(envelope, dict):
        raise WebhookPayloadError("Webhook payload is not a JSON object")
    event_id, event_type = envelope.get("id"), envelope.get("type")
    if not isinstance(event_id, str) or not isinstance(event_type, str) or not event_id or not event_type:
        raise WebhookPayloadError("Webhook payload id and type must be non-empty strings")

    known = _EVENT_MODELS.get(event_type)
    if known is None:
        return UnknownEvent(id=event_id, type=event_type)

    model, attribute = known
    data = envelope.get("data")
    obj = data.get("object") if isinstance(data, dict) else None
    if not isinstance(obj, dict):
        raise WebhookPayloadError(f"Webhook {event_type} has no data.object")

    try:
        return model(id=event_id, type=event_type, **{attribute: obj})
    except ValidationError as e:
        raise WebhookPayloadError(f"Error parsing {event_type} payload: {e}") from e
