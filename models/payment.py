from datetime import datetime
from typing import Annotated, Optional

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, field_validator


def _require_http_url(value: str) -> str:
    value = value.strip()
    if not value.startswith(("http://", "https://")):
        raise ValueError("must be an absolute http(s) URL")
    return value


# Kept as str: success URLs carry the literal {CHECKOUT_SESSION_ID} placeholder
RedirectUrl = Annotated[str, AfterValidator(_require_http_url)]


# ---------------------------------------------------------------------------
# Provider value objects (never carry SDK objects past the provider module)
# ---------------------------------------------------------------------------

class CustomerAddress(BaseModel):
    line1: str
    city: str
    country: str
    postal_code: Optional[str] = None


class CustomerParams(BaseModel):
    name: str
    email: str
    phone: Optional[str] = None
    address: Optional[CustomerAddress] = None
    metadata: dict[str, str] = Field(default_factory=dict)


class CheckoutSessionResult(BaseModel):
    session_id: str
    url: str


class ProviderSubscription(BaseModel):
    id: str
    status: str
    plan_id: str = ""
    current_period_end: Optional[datetime] = None
    cancel_at_period_end: bool = False


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------

class SubscriptionCheckoutRequest(BaseModel):
    plan_id: str = Field(..., min_length=1, examples=["price_1Oxy3JExamplePriceID"])
    success_url: RedirectUrl = Field(..., examples=["https://yourapp.com/success?session_id={CHECKOUT_SESSION_ID}"])
    cancel_url: RedirectUrl = Field(..., examples=["https://yourapp.com/cancel"])

    @field_validator("plan_id")
    @classmethod
    def strip_plan_id(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("plan_id must not be blank")
        return value


class OneTimeCheckoutRequest(BaseModel):
    amount: int = Field(..., gt=0, description="Amount in minor currency units, e.g. 2000 = $20.00")
    currency: str = Field(..., min_length=3, max_length=3, examples=["usd"])
    product_name: str = Field(..., min_length=1, examples=["Premium Report"])
    success_url: RedirectUrl
    cancel_url: RedirectUrl

    @field_validator("currency")
    @classmethod
    def normalize_currency(cls, value: str) -> str:
        if not value.isalpha():
            raise ValueError("currency must be a three letter ISO code")
        return value.lower()


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------

class CheckoutResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    session_id: str = Field(..., serialization_alias="sessionId")
    url: str


class SubscriptionResponse(BaseModel):
    has_subscription: bool
    subscription_id: Optional[str] = None
    plan_id: Optional[str] = None
    status: Optional[str] = None
    cancel_at_period_end: Optional[bool] = None
    current_period_end: Optional[datetime] = None


class SubscriptionDetails(BaseModel):
    id: str
    status: str
    cancel_at_period_end: bool
    current_period_end: Optional[datetime] = None


class CancelSubscriptionResponse(BaseModel):
    message: str
    subscription: SubscriptionDetails


class WebhookResponse(BaseModel):
    received: bool = True
