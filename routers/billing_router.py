"""
Billing Router - API endpoints for Stripe checkout, subscriptions and webhooks
Webhook is defined FIRST to avoid middleware conflicts
"""

import logging
from fastapi import APIRouter, Request, Depends, HTTPException, Header
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession

from auth import get_current_user
from database import get_db
from models.payment import (
    CancelSubscriptionResponse,
    CheckoutResponse,
    OneTimeCheckoutRequest,
    SubscriptionCheckoutRequest,
    SubscriptionResponse,
    WebhookResponse,
)
from services.billing_errors import (
    CheckoutSessionError,
    CustomerResolutionError,
    NoActiveSubscriptionError,
    ProviderError,
    UserNotFoundError,
    WebhookPayloadError,
    WebhookSignatureError,
)
from services.checkout_service import CheckoutService
from services.payment_provider import StripePaymentProvider, get_payment_provider
from services.subscription_service import SubscriptionService
from services.webhook_service import WebhookReconciler

logger = logging.getLogger(__name__)

# Create billing router
billing_router = APIRouter(prefix="/api", tags=["billing"])


# WEBHOOK ENDPOINT - MUST BE DEFINED FIRST TO AVOID MIDDLEWARE CONFLICTS
@billing_router.post("/stripe/webhook", response_model=WebhookResponse, tags=["webhook"])
async def stripe_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(None, alias="Stripe-Signature"),
    db: AsyncSession = Depends(get_db),
    provider: StripePaymentProvider = Depends(get_payment_provider),
):
    """
    Handle Stripe webhook events with signature verification.

    Unverified payloads are rejected with 400 and never parsed. Every
    verified event, including ones that need no action, is acknowledged
    with 200 so Stripe does not keep retrying it.
    """
    # Raw request body is required for signature verification
    payload = await request.body()

    try:
        await WebhookReconciler(db, provider).process(payload, stripe_signature)
    except WebhookSignatureError as e:
        logger.error(f"Stripe webhook rejected: {e}")
        raise HTTPException(status_code=400, detail=str(e))
    except WebhookPayloadError as e:
        logger.error(f"Invalid webhook payload: {e}")
        raise HTTPException(status_code=400, detail="Error parsing webhook payload")

    return WebhookResponse(received=True)


@billing_router.post("/payment/checkout/subscription", response_model=CheckoutResponse, tags=["payment"])
async def create_subscription_checkout(
    body: SubscriptionCheckoutRequest,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    provider: StripePaymentProvider = Depends(get_payment_provider),
):
    """Create a Stripe checkout session for a subscription plan"""
    try:
        session = await CheckoutService(db, provider).create_subscription_checkout(current_user["user_id"], body)
    except (UserNotFoundError, CustomerResolutionError, CheckoutSessionError) as e:
        raise _checkout_http_error(e)
    return CheckoutResponse(session_id=session.session_id, url=session.url)


@billing_router.post("/payment/checkout/one-time", response_model=CheckoutResponse, tags=["payment"])
async def create_one_time_checkout(
    body: OneTimeCheckoutRequest,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    provider: StripePaymentProvider = Depends(get_payment_provider),
):
    """Create a Stripe checkout session for a one-time payment"""
    try:
        session = await CheckoutService(db, provider).create_one_time_checkout(current_user["user_id"], body)
    except (UserNotFoundError, CustomerResolutionError, CheckoutSessionError) as e:
        raise _checkout_http_error(e)
    return CheckoutResponse(session_id=session.session_id, url=session.url)


@billing_router.get(
    "/payment/subscription",
    response_model=SubscriptionResponse,
    response_model_exclude_none=True,
    tags=["payment"],
)
async def get_subscription(
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    provider: StripePaymentProvider = Depends(get_payment_provider),
):
    """Return the current subscription, live from Stripe when reachable"""
    try:
        return await SubscriptionService(db, provider).get_subscription(current_user["user_id"])
    except UserNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@billing_router.post("/payment/subscription/cancel", response_model=CancelSubscriptionResponse, tags=["payment"])
async def cancel_subscription(
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    provider: StripePaymentProvider = Depends(get_payment_provider),
):
    """Cancel the subscription at the end of the current billing period"""
    try:
        return await SubscriptionService(db, provider).cancel_subscription(current_user["user_id"])
    except UserNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except NoActiveSubscriptionError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except ProviderError as e:
        raise HTTPException(status_code=500, detail=f"Error canceling subscription: {e}")


def _checkout_http_error(error: Exception) -> HTTPException:
    if isinstance(error, UserNotFoundError):
        return HTTPException(status_code=404, detail=str(error))
    if isinstance(error, CustomerResolutionError):
        return HTTPException(status_code=502, detail=str(error))
    return HTTPException(status_code=500, detail=str(error))
