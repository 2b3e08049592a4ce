import logging
import re
from datetime import datetime, timezone
from typing import List, Optional

from starlette.concurrency import run_in_threadpool

from portail.config import INITIAL_TOKEN_BALANCE, MIN_PASSWORD_LENGTH
from portail.errors import ValidationError, remote_error_from
from portail.infra.channel import BatchWrite, DocumentChannel
from .models import (
    AuthResponse,
    CurrentUser,
    build_user_dict,
    determine_role,
    handle_exception,
    is_admin_email,
    make_auth_response,
)
from .repository import (
    CUSTOMERS_COLLECTION,
    USERS_COLLECTION,
    auth_sign_in_password as sign_in_password,
    auth_sign_out as sign_out,
    auth_sign_up_account as sign_up_account,
    commit_profile_writes,
    get_user_from_access_token as _repo_get_user_from_token,
    get_user_profile,
)

logger = logging.getLogger(__name__)

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
SIGNUP_PENDING_MESSAGE = "Inscription réussie, vérifiez votre email"

# --- Validation locale (aucun appel distant) ---

def validate_signup(email: str, password: str, confirm_password: str) -> str:
    """Retourne l'email normalisé ou lève ValidationError."""
    email = (email or "").strip()
    if not EMAIL_RE.match(email):
        raise ValidationError("Le format de l'adresse email est incorrect.", code="signup/invalid-email")
    if (password or "") != (confirm_password or ""):
        raise ValidationError("Les mots de passe ne correspondent pas.", code="signup/password-mismatch")
    if len(password or "") < MIN_PASSWORD_LENGTH:
        raise ValidationError(
            f"Mot de passe trop faible. Il doit contenir au moins {MIN_PASSWORD_LENGTH} caractères.",
            code="signup/weak-password",
        )
    return email

# --- Cas d'usage Auth exposés ---

def login(email: str, password: str) -> AuthResponse:
    """Connexion:
    - Délègue à supabase.auth.sign_in_with_password via repository
    - Normalise la réponse en AuthResponse, erreurs traduites via la table des messages
    """
    try:
        email = (email or "").strip()
        res = sign_in_password(email, password)
        return make_auth_response(res, fallback_error="Email ou mot de passe incorrect. Vérifiez vos informations.")
    except Exception as e:
        return handle_exception("sign_in", e)

def build_profile_writes(user_id: str, email: str, now: Optional[datetime] = None) -> List[BatchWrite]:
    created_at = (now or datetime.now(timezone.utc)).isoformat()
    return [
        BatchWrite(
            collection=USERS_COLLECTION,
            doc_id=user_id,
            data={
                "uid": user_id,
                "email": email,
                "created_at": created_at,
                "role": determine_role(email),
                "status": "active",
                "token_balance": INITIAL_TOKEN_BALANCE,
            },
        ),
        BatchWrite(collection=CUSTOMERS_COLLECTION, doc_id=user_id, data={"email": email}),
    ]

async def provision_profile(channel: DocumentChannel, user_id: str, email: str) -> None:
    """Écrit users/{uid} et customers/{uid} dans un seul lot: les deux ou aucun."""
    try:
        await commit_profile_writes(channel, build_profile_writes(user_id, email))
    except Exception as e:
        logger.exception("Provisionnement du profil en échec user_id=%s", user_id)
        raise remote_error_from(e, fallback_code="store/unavailable") from e
    logger.info("Profil provisionné user_id=%s solde=%s", user_id, INITIAL_TOKEN_BALANCE)

async def signup(channel: DocumentChannel, email: str, password: str, confirm_password: str) -> AuthResponse:
    """Inscription:
    - Validation locale (email, confirmation, longueur) avant tout appel distant
    - Création du compte Supabase Auth, puis provisionnement atomique du profil
    - Une erreur du fournisseur d'identité donne AuthResponse(False); une erreur du lot lève RemoteError
    """
    email = validate_signup(email, password, confirm_password)
    try:
        res = await run_in_threadpool(sign_up_account, email, password)
    except Exception as e:
        return handle_exception("sign_up", e)

    user = getattr(res, "user", None)
    user_id = getattr(user, "id", None)
    if not user_id:
        return AuthResponse(False, error="Inscription impossible pour le moment. Réessayez.")

    await provision_profile(channel, str(user_id), email)

    sess = getattr(res, "session", None)
    if sess and getattr(sess, "access_token", None):
        return make_auth_response(res)
    # Succès sans session (vérification email)
    return AuthResponse(True, user=build_user_dict(user), error=SIGNUP_PENDING_MESSAGE)

def logout(access_token: Optional[str]) -> None:
    """Best-effort: la session locale (cookie) est effacée par la vue quoi qu'il arrive."""
    if not access_token:
        return
    try:
        sign_out(access_token)
    except Exception:
        logger.warning("Révocation de session GoTrue en échec", exc_info=True)

# --- Intégration sécurité / profil ---

async def resolve_current_user(channel: DocumentChannel, access_token: str) -> Optional[CurrentUser]:
    """Identité + profil applicatif.
    - Jeton invalide, profil absent, profil illisible ou statut "disabled" -> None (verrouillage)
    - is_admin dérivé de ADMIN_EMAILS
    """
    if not access_token:
        return None
    try:
        raw = await run_in_threadpool(_repo_get_user_from_token, access_token)
    except Exception:
        logger.info("Jeton de session refusé par GoTrue")
        return None
    user_id = raw.get("id")
    if not user_id:
        return None
    email = raw.get("email")

    try:
        profile = await get_user_profile(channel, str(user_id))
    except Exception:
        logger.exception("Lecture du profil en échec user_id=%s", user_id)
        return None
    if profile is None:
        logger.warning("Profil absent, session refusée user_id=%s", user_id)
        return None
    status = str(profile.get("status") or "active")
    if status == "disabled":
        logger.warning("Compte désactivé, session refusée user_id=%s", user_id)
        return None

    try:
        balance = int(profile.get("token_balance") or 0)
    except (TypeError, ValueError):
        balance = 0
    return CurrentUser(
        id=str(user_id),
        email=email,
        is_admin=is_admin_email(email),
        status=status,
        token_balance=balance,
        token=access_token,
    )
