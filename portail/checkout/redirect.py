"""
Remise de la navigation au processeur de paiement (Stripe Checkout).
- Seule la clé publiable est manipulée (pk_live_... / pk_test_...), jamais une clé secrète.
- La redirection effective est faite par le navigateur (Stripe.js redirectToCheckout) sur la page
  /paiement/redirection; ce module produit les paramètres de cette page.
"""
import logging
import re
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlencode

from portail.errors import ConfigError

logger = logging.getLogger(__name__)

PUBLISHABLE_KEY_RE = re.compile(r"^pk_(live|test)_[A-Za-z0-9]+$")
REDIRECT_PATH = "/paiement/redirection"

def is_publishable_key(key: Optional[str]) -> bool:
    return bool(key) and key.startswith("pk_")

def require_publishable_key(key: Optional[str]) -> str:
    """
    Vérifie la clé publiable Stripe.
    - Préfixe pk_ obligatoire (une clé sk_/rk_ est refusée).
    - Le message d'erreur montre uniquement le début de la clé.
    """
    if not is_publishable_key(key):
        shown = (key or "")[:10]
        raise ConfigError(
            "Les clés Stripe ne sont pas configurées.\n\n"
            f"Clé actuelle: {shown}...\n"
            'Elle doit commencer par "pk_live_" ou "pk_test_"',
            code="config/stripe-publishable-key",
        )
    if not PUBLISHABLE_KEY_RE.match(key):
        logger.warning("Clé publiable Stripe au format inhabituel: %s...", key[:10])
    return key


@dataclass(frozen=True)
class CheckoutHandoff:
    session_id: str
    publishable_key: str

    @property
    def redirect_path(self) -> str:
        return f"{REDIRECT_PATH}?{urlencode({'session_id': self.session_id})}"

    def to_dict(self) -> dict:
        return {
            "sessionId": self.session_id,
            "publishableKey": self.publishable_key,
            "redirectUrl": self.redirect_path,
        }


class StripeRedirector:
    """Équivalent serveur de Stripe(pk).redirectToCheckout({sessionId})."""

    def __init__(self, publishable_key: Optional[str]):
        self.publishable_key = publishable_key or ""

    def check_config(self) -> None:
        require_publishable_key(self.publishable_key)

    def redirect_to_checkout(self, session_id: str) -> CheckoutHandoff:
        key = require_publishable_key(self.publishable_key)
        logger.info("checkout.redirect session_id=%s", session_id)
        return CheckoutHandoff(session_id=session_id, publishable_key=key)
