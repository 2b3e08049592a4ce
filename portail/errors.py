"""
Taxonomie des erreurs du portail.

- ValidationError: saisie invalide (email mal formé, mots de passe différents), traitée localement.
- Unauthenticated: action réservée à un utilisateur connecté, bloquée avant toute I/O.
- ConfigError: clé publiable Stripe absente ou mal formée, jamais réessayée.
- RemoteError: échec du magasin de documents ou du fournisseur d'identité, traduit via MESSAGES.
- CheckoutTimeout: l'extension de paiement n'a pas répondu dans le délai.
- FeedError: échec d'abonnement au flux (non bloquant, conserve le dernier état).
"""
import logging
from typing import Optional

logger = logging.getLogger(__name__)

GENERIC_MESSAGE = "Une erreur inattendue est survenue. Veuillez réessayer."

# Codes Supabase Auth / PostgREST / Realtime -> message utilisateur
MESSAGES = {
    "email_address_invalid": "Le format de l'adresse email est incorrect. Vérifiez-la et réessayez.",
    "invalid_credentials": "Email ou mot de passe incorrect. Vérifiez vos informations.",
    "user_not_found": "Email ou mot de passe incorrect. Vérifiez vos informations.",
    "email_exists": "Cet email est déjà utilisé. Connectez-vous ou utilisez une autre adresse.",
    "user_already_exists": "Cet email est déjà utilisé. Connectez-vous ou utilisez une autre adresse.",
    "weak_password": "Mot de passe trop faible. Il doit contenir au moins 6 caractères.",
    "over_request_rate_limit": "Trop de tentatives. Réessayez plus tard ou réinitialisez votre mot de passe.",
    "email_not_confirmed": "Votre email n'est pas encore confirmé. Consultez votre boîte de réception.",
    "signup_disabled": "Les inscriptions sont actuellement désactivées.",
    "user_banned": "Ce compte est désactivé.",
    "store/failed-precondition": "Index manquant côté base de données pour cette requête.",
    "store/permission-denied": "Accès refusé à cette ressource.",
    "store/unavailable": "Service momentanément indisponible. Réessayez dans un instant.",
    "checkout/create-failed": "Impossible de démarrer le paiement. Réessayez.",
    "plans/fetch-failed": "Impossible de charger les offres d'abonnement.",
}


class PortailError(Exception):
    """Base commune: porte un code machine et un message présentable."""
    status_code = 500
    default_code = "error"

    def __init__(self, message: Optional[str] = None, *, code: Optional[str] = None):
        self.code = code or self.default_code
        self.message = message or GENERIC_MESSAGE
        super().__init__(self.message)


class ValidationError(PortailError):
    status_code = 400
    default_code = "validation"


class Unauthenticated(PortailError):
    status_code = 401
    default_code = "unauthenticated"

    def __init__(self, message: Optional[str] = None, *, code: Optional[str] = None):
        super().__init__(message or "Veuillez vous connecter", code=code)


class ConfigError(PortailError):
    status_code = 500
    default_code = "config"


class RemoteError(PortailError):
    status_code = 502
    default_code = "remote"

    def __init__(self, message: Optional[str] = None, *, code: Optional[str] = None, cause: Optional[BaseException] = None):
        super().__init__(message or localize_remote_error(code), code=code)
        self.cause = cause


class CheckoutTimeout(PortailError):
    status_code = 504
    default_code = "checkout/timeout"

    def __init__(self, message: Optional[str] = None, *, code: Optional[str] = None):
        super().__init__(message or "Erreur de paiement (délai dépassé: le serveur a mis trop de temps à répondre)", code=code)


class FeedError(PortailError):
    default_code = "feed"


def localize_remote_error(code: Optional[str]) -> str:
    """Traduit un code distant; les codes inconnus sont journalisés et donnent un message générique."""
    if code and code in MESSAGES:
        return MESSAGES[code]
    logger.error("Code d'erreur distant non géré: %s", code)
    if code:
        return f"Une erreur inattendue est survenue ({code}). Veuillez réessayer."
    return GENERIC_MESSAGE


def remote_error_from(exc: BaseException, *, fallback_code: Optional[str] = None) -> RemoteError:
    """
    Convertit une exception SDK (supabase/postgrest/gotrue) en RemoteError.
    - Lit exc.code si présent, sinon utilise fallback_code.
    """
    if isinstance(exc, RemoteError):
        return exc
    code = getattr(exc, "code", None)
    if not isinstance(code, str) or not code:
        code = fallback_code
    return RemoteError(code=code, cause=exc)
