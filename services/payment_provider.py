"""
Payment Provider - the only module that talks to the Stripe SDK.
Every response is translated into plain models before it leaves here.
"""

import logging
from typing import Optional

import stripe

from config import settings
from models.payment import CheckoutSessionResult, CustomerParams, ProviderSubscription
from models.stripe_events import SubscriptionObject
from services.billing_errors import ProviderError, WebhookSignatureError

logger = logging.getLogger(__name__)


def _as_dict(obj) -> dict:
    """Plain nested dict view of a Stripe SDK object."""
    return obj.to_dict(recursive=True)


def _to_subscription(obj) -> ProviderSubscription:
    subscription = SubscriptionObject.model_validate(_as_dict(obj))
    return ProviderSubscription(
        id=subscription.id,
        status=subscription.status,
        plan_id=subscription.plan_id(),
        current_period_end=subscription.period_end(),
        cancel_at_period_end=subscription.cancel_at_period_end,
    )


class StripePaymentProvider:
    """
    Thin synchronous wrapper over the Stripe API.
    Calls block and are never retried; failures surface as ProviderError.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        webhook_secret: Optional[str] = None,
        webhook_tolerance: int = 300,
    ):
        self.api_key = api_key
        self.webhook_secret = webhook_secret
        self.webhook_tolerance = webhook_tolerance

    def _require_api_key(self) -> str:
        if not self.api_key:
            logger.error("STRIPE_SECRET_KEY is not set. Cannot call Stripe.")
            raise ProviderError("STRIPE_SECRET_KEY is not set")
        return self.api_key

    def create_customer(self, params: CustomerParams) -> str:
        """Create a Stripe customer and return its id."""
        api_key = self._require_api_key()
        request = params.model_dump(exclude_none=True)
        if not request.get("metadata"):
            request.pop("metadata", None)
        try:
            customer = stripe.Customer.create(api_key=api_key, **request)
        except stripe.StripeError as e:
            logger.error(f"Failed to create Stripe customer: {e}")
            raise ProviderError(str(e)) from e
        return customer.id

    def create_checkout_session(
        self,
        customer_id: str,
        mode: str,
        line_items: list[dict],
        success_url: str,
        cancel_url: str,
        metadata: dict[str, str],
    ) -> CheckoutSessionResult:
        api_key = self._require_api_key()
        try:
            session = stripe.checkout.Session.create(
                api_key=api_key,
                customer=customer_id,
                payment_method_types=["card"],
                mode=mode,
                line_items=line_items,
                success_url=success_url,
                cancel_url=cancel_url,
                metadata=metadata,
            )
        except stripe.StripeError as e:
            logger.error(f"Failed to create checkout session: {e}")
            raise ProviderError(str(e)) from e
        return CheckoutSessionResult(session_id=session.id, url=session.url)

    def retrieve_subscription(self, subscription_id: str) -> ProviderSubscription:
        api_key = self._require_api_key()
        try:
            subscription = stripe.Subscription.retrieve(subscription_id, api_key=api_key)
        except stripe.StripeError as e:
            logger.warning(f"Failed to retrieve subscription {subscription_id}: {e}")
            raise ProviderError(str(e)) from e
        return _to_subscription(subscription)

    def cancel_subscription_at_period_end(self, subscription_id: str) -> ProviderSubscription:
        api_key = self._require_api_key()
        try:
            subscription = stripe.Subscription.modify(
                subscription_id,
                api_key=api_key,
                cancel_at_period_end=True,
            )
        except stripe.StripeError as e:
            logger.error(f"Failed to cancel subscription {subscription_id}: {e}")
            raise ProviderError(str(e)) from e
        return _to_subscription(subscription)

    def get_default_payment_method(self, customer_id: str) -> Optional[str]:
        """Id of the customer's invoice-settings default payment method, if any."""
        api_key = self._require_api_key()
        try:
            customer = _as_dict(stripe.Customer.retrieve(customer_id, api_key=api_key))
        except stripe.StripeError as e:
            logger.warning(f"Failed to retrieve customer {customer_id}: {e}")
            raise ProviderError(str(e)) from e

        if customer.get("deleted"):
            return None
        default_pm = (customer.get("invoice_settings") or {}).get("default_payment_method")
        if isinstance(default_pm, dict):
            default_pm = default_pm.get("id")
        return default_pm or None

    def verify_webhook_signature(self, payload: bytes, signature_header: Optional[str]) -> None:
        """
        Check the Stripe-Signature header (HMAC-SHA256 over "<timestamp>.<payload>").

        Raises:
            WebhookSignatureError: secret not configured, header missing, or mismatch
        """
        if not self.webhook_secret:
            logger.error("STRIPE_WEBHOOK_SECRET is not set. Rejecting webhook.")
            raise WebhookSignatureError("Webhook secret not configured")
        if not signature_header:
            raise WebhookSignatureError("Missing Stripe-Signature header")
        try:
            stripe.WebhookSignature.verify_header(
                payload.decode("utf-8"),
                signature_header,
                self.webhook_secret,
                self.webhook_tolerance,
            )
        except UnicodeDecodeError as e:
            raise WebhookSignatureError("Webhook payload is not valid UTF-8") from e
        except stripe.SignatureVerificationError as e:
            raise WebhookSignatureError(f"Webhook signature verification failed: {e}") from e


def get_payment_provider() -> StripePaymentProvider:
    """FastAPI dependency returning a provider configured from settings."""
    return StripePaymentProvider(
        api_key=settings.stripe_secret_key,
        webhook_secret=settings.stripe_webhook_secret,
        webhook_tolerance=settings.stripe_webhook_tolerance,
    )
