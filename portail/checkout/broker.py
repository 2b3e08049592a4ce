"""
Broker de session de paiement.

Le client n'appelle jamais le processeur de paiement: il écrit un document d'intention dans
customers/{uid}/checkout_sessions, l'extension de paiement (côté serveur, hors de notre contrôle)
complète ce document avec session_id ou error, et le broker observe ce champ.

Machine à états:
    IDLE -> CREATING -> AWAITING_RESULT -> SUCCEEDED | FAILED | TIMED_OUT
    IDLE -> CONFIG_ERROR (clé publiable invalide, magasin jamais contacté)
Tout état terminal revient à IDLE et libère le verrou « paiement en cours ».
"""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Protocol

from portail.auth.models import CurrentUser
from portail.config import CHECKOUT_SESSION_PLACEHOLDER, CHECKOUT_TIMEOUT_SECONDS, STRIPE_PUBLISHABLE_KEY
from portail.context import SessionContext
from portail.errors import (
    CheckoutTimeout,
    ConfigError,
    PortailError,
    Unauthenticated,
    ValidationError,
    remote_error_from,
)
from portail.infra.channel import Document, DocumentChannel, Query
from portail.infra.correlation import PendingRequests, await_field
from .redirect import CheckoutHandoff, StripeRedirector

logger = logging.getLogger(__name__)

ALREADY_PROCESSING_MESSAGE = "Un paiement est déjà en cours de traitement."


class CheckoutState(str, Enum):
    IDLE = "idle"
    CREATING = "creating"
    AWAITING_RESULT = "awaiting_result"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    TIMED_OUT = "timed_out"
    CONFIG_ERROR = "config_error"


class CheckoutStatus(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    TIMED_OUT = "timed_out"
    CONFIG_ERROR = "config_error"
    ALREADY_PROCESSING = "already_processing"


class Redirector(Protocol):
    def check_config(self) -> None: ...
    def redirect_to_checkout(self, session_id: str) -> CheckoutHandoff: ...


@dataclass(frozen=True)
class NavigationContext:
    """Origine du site et page courante, pour les URLs de retour du paiement."""
    origin: str
    current_url: str

    @property
    def success_url(self) -> str:
        return f"{self.origin.rstrip('/')}/?session_id={CHECKOUT_SESSION_PLACEHOLDER}"


@dataclass(frozen=True)
class CheckoutOutcome:
    status: CheckoutStatus
    price_ref: str
    intent_id: Optional[str] = None
    session_id: Optional[str] = None
    message: Optional[str] = None
    handoff: Optional[CheckoutHandoff] = None

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"status": self.status.value, "priceRef": self.price_ref}
        if self.intent_id:
            body["intentId"] = self.intent_id
        if self.message:
            body["message"] = self.message
        if self.handoff is not None:
            body.update(self.handoff.to_dict())
        return body


def checkout_collection(user_id: str) -> str:
    return f"customers/{user_id}/checkout_sessions"


def extract_error_message(doc: Document) -> Optional[str]:
    error = doc.get("error")
    if not error:
        return None
    if isinstance(error, dict):
        return str(error.get("message") or "") or None
    return str(error)


def has_checkout_result(doc: Document) -> bool:
    """Déclenchement par niveau: présence de session_id ou error.message."""
    return bool(doc.get("session_id")) or extract_error_message(doc) is not None


class CheckoutBroker:
    def __init__(
        self,
        channel: DocumentChannel,
        redirector: Redirector,
        session: SessionContext,
        *,
        timeout: float = CHECKOUT_TIMEOUT_SECONDS,
        pending: Optional[PendingRequests] = None,
    ):
        self.channel = channel
        self.redirector = redirector
        self.session = session
        self.timeout = timeout
        self.pending = pending or PendingRequests()
        self.state = CheckoutState.IDLE
        self.history: List[CheckoutState] = []
        self._in_flight = False

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    async def initiate_checkout(self, price_ref: str, navigation: NavigationContext) -> CheckoutOutcome:
        """
        Démarre un paiement pour l'offre `price_ref`.
        - ValidationError si price_ref est vide, Unauthenticated sans utilisateur (avant toute I/O).
        - Un second appel pendant un paiement en cours est refusé (ALREADY_PROCESSING), jamais mis en file.
        - Les erreurs distantes et le délai dépassé sont convertis en résultat, jamais propagés.
        """
        price_ref = (price_ref or "").strip()
        if not price_ref:
            raise ValidationError("Aucune offre sélectionnée.", code="checkout/missing-price")
        user = self.session.current_user
        if user is None:
            raise Unauthenticated()

        if self._in_flight:
            logger.info("checkout.rejected already_processing user_id=%s price=%s", user.id, price_ref)
            return CheckoutOutcome(CheckoutStatus.ALREADY_PROCESSING, price_ref, message=ALREADY_PROCESSING_MESSAGE)
        self._in_flight = True
        try:
            return await self._run(user, price_ref, navigation)
        except PortailError as e:
            logger.exception("checkout.unexpected user_id=%s", user.id)
            self._transition(CheckoutState.FAILED)
            return CheckoutOutcome(CheckoutStatus.FAILED, price_ref, message=e.message)
        finally:
            self._in_flight = False
            self._transition(CheckoutState.IDLE)

    async def _run(self, user: CurrentUser, price_ref: str, navigation: NavigationContext) -> CheckoutOutcome:
        try:
            self.redirector.check_config()
        except ConfigError as e:
            logger.error("checkout.config_error user_id=%s: %s", user.id, e.code)
            self._transition(CheckoutState.CONFIG_ERROR)
            return CheckoutOutcome(CheckoutStatus.CONFIG_ERROR, price_ref, message=e.message)

        self._transition(CheckoutState.CREATING)
        collection = checkout_collection(user.id)
        intent = {
            "price": price_ref,
            "success_url": navigation.success_url,
            "cancel_url": navigation.current_url,
        }
        try:
            intent_id = await self.channel.create(collection, intent)
        except Exception as e:
            # Pas de nouvelle tentative: l'écriture peut avoir des effets côté extension
            err = remote_error_from(e, fallback_code="checkout/create-failed")
            logger.exception("checkout.create_failed user_id=%s price=%s code=%s", user.id, price_ref, err.code)
            self._transition(CheckoutState.FAILED)
            return CheckoutOutcome(CheckoutStatus.FAILED, price_ref, message=err.message)

        self._transition(CheckoutState.AWAITING_RESULT)
        logger.info("checkout.awaiting user_id=%s intent_id=%s timeout=%.1fs", user.id, intent_id, self.timeout)
        try:
            doc = await await_field(
                self.channel,
                Query.document(collection, intent_id),
                has_checkout_result,
                self.timeout,
                pending=self.pending,
            )
        except CheckoutTimeout as e:
            # Le document peut encore être complété plus tard; il n'est plus observé
            logger.warning("checkout.timed_out user_id=%s intent_id=%s", user.id, intent_id)
            self._transition(CheckoutState.TIMED_OUT)
            return CheckoutOutcome(CheckoutStatus.TIMED_OUT, price_ref, intent_id=intent_id, message=e.message)
        except PortailError as e:
            logger.error("checkout.observe_failed user_id=%s intent_id=%s code=%s", user.id, intent_id, e.code)
            self._transition(CheckoutState.FAILED)
            return CheckoutOutcome(CheckoutStatus.FAILED, price_ref, intent_id=intent_id, message=e.message)

        error_message = extract_error_message(doc)
        if error_message is not None:
            logger.error("checkout.extension_error user_id=%s intent_id=%s: %s", user.id, intent_id, error_message)
            self._transition(CheckoutState.FAILED)
            return CheckoutOutcome(CheckoutStatus.FAILED, price_ref, intent_id=intent_id, message=error_message)

        session_id = str(doc.get("session_id"))
        handoff = self.redirector.redirect_to_checkout(session_id)
        self._transition(CheckoutState.SUCCEEDED)
        logger.info("checkout.succeeded user_id=%s intent_id=%s session_id=%s", user.id, intent_id, session_id)
        return CheckoutOutcome(
            CheckoutStatus.SUCCEEDED,
            price_ref,
            intent_id=intent_id,
            session_id=session_id,
            handoff=handoff,
        )

    def _transition(self, state: CheckoutState) -> None:
        self.state = state
        self.history.append(state)


class CheckoutBrokerRegistry:
    """Un broker (donc un verrou « paiement en cours ») par utilisateur."""

    def __init__(
        self,
        channel: DocumentChannel,
        publishable_key: Optional[str] = None,
        *,
        timeout: float = CHECKOUT_TIMEOUT_SECONDS,
    ):
        self.channel = channel
        self.publishable_key = STRIPE_PUBLISHABLE_KEY if publishable_key is None else publishable_key
        self.timeout = timeout
        self.pending = PendingRequests()
        self._brokers: Dict[str, CheckoutBroker] = {}

    def for_user(self, user: CurrentUser) -> CheckoutBroker:
        broker = self._brokers.get(user.id)
        if broker is None:
            broker = CheckoutBroker(
                self.channel,
                StripeRedirector(self.publishable_key),
                SessionContext(current_user=user),
                timeout=self.timeout,
                pending=self.pending,
            )
            self._brokers[user.id] = broker
        else:
            broker.session.set_user(user)
        return broker

    def __len__(self) -> int:
        return len(self._brokers)
