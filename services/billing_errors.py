"""
Exceptions raised by the billing services.

Routers translate these into HTTP responses; reconciliation no-ops are
not errors and never raise.
"""


class BillingError(Exception):
    """Base class for billing failures."""


class UserNotFoundError(BillingError):
    pass


class ProviderError(BillingError):
    """The payment provider was unreachable or rejected the call."""


class CustomerResolutionError(BillingError):
    """Could not create or persist the provider customer for a user."""


class CheckoutSessionError(BillingError):
    """Customer was resolved but the checkout session could not be created."""


class NoActiveSubscriptionError(BillingError):
    def __init__(self, message: str = "No active subscription found"):
        super().__init__(message)


class WebhookSignatureError(BillingError):
    """Webhook payload failed authenticity verification."""


class WebhookPayloadError(BillingError):
    """Verified webhook payload could not be decoded."""
