"""
Module 'checkout': broker de session de paiement et remise au processeur (Stripe Checkout).
"""
from .broker import (
    CheckoutBroker,
    CheckoutBrokerRegistry,
    CheckoutOutcome,
    CheckoutState,
    CheckoutStatus,
    NavigationContext,
)
from .redirect import CheckoutHandoff, StripeRedirector, require_publishable_key

__all__ = [
    "CheckoutBroker",
    "CheckoutBrokerRegistry",
    "CheckoutOutcome",
    "CheckoutState",
    "CheckoutStatus",
    "NavigationContext",
    "CheckoutHandoff",
    "StripeRedirector",
    "require_publishable_key",
]
