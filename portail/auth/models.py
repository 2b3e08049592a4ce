from dataclasses import dataclass
from typing import Optional, Dict, Any
import logging

from portail.config import ADMIN_EMAILS
from portail.errors import localize_remote_error

logger = logging.getLogger(__name__)

def is_admin_email(email: Optional[str]) -> bool:
    return bool(email) and email.strip().lower() in ADMIN_EMAILS

def determine_role(email: Optional[str]) -> str:
    return "admin" if is_admin_email(email) else "user"

@dataclass(frozen=True)
class CurrentUser:
    """Identité authentifiée + profil applicatif (table users)."""
    id: str
    email: Optional[str] = None
    is_admin: bool = False
    status: str = "active"
    token_balance: int = 0
    token: Optional[str] = None

    def to_public_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "email": self.email,
            "isAdmin": self.is_admin,
            "status": self.status,
            "tokenBalance": self.token_balance,
        }

class AuthResponse:
    def __init__(
        self,
        success: bool,
        user: Optional[Dict[str, Any]] = None,
        session: Optional[Dict[str, Any]] = None,
        error: Optional[str] = None,
    ):
        self.success = success
        self.user = user
        self.session = session
        self.error = error

    @property
    def access_token(self):
        return (self.session or {}).get("access_token")

    @property
    def refresh_token(self):
        return (self.session or {}).get("refresh_token")

def build_user_dict(user) -> Dict[str, Any]:
    email = getattr(user, "email", None)
    return {
        "id": getattr(user, "id", None),
        "email": email,
        "role": determine_role(email),
    }

def build_session_dict(session) -> Dict[str, Any]:
    return {
        "access_token": getattr(session, "access_token", None),
        "refresh_token": getattr(session, "refresh_token", None),
    }

def make_auth_response(res, fallback_error: str = "Identifiants invalides") -> AuthResponse:
    sess = getattr(res, "session", None)
    user = getattr(res, "user", None)
    if not sess or not getattr(sess, "access_token", None):
        return AuthResponse(False, error=fallback_error)
    return AuthResponse(True, user=build_user_dict(user), session=build_session_dict(sess))

_MESSAGE_HINTS = (
    ("invalid login credentials", "invalid_credentials"),
    ("already registered", "user_already_exists"),
    ("already exists", "user_already_exists"),
    ("database error saving new user", "user_already_exists"),
    ("email not confirmed", "email_not_confirmed"),
    ("rate limit", "over_request_rate_limit"),
    ("password should be at least", "weak_password"),
    ("unable to validate email", "email_address_invalid"),
)

def auth_error_code(e: Exception) -> Optional[str]:
    """Code GoTrue (e.code) si présent, sinon déduit du message."""
    code = getattr(e, "code", None)
    if isinstance(code, str) and code:
        return code
    msg = str(e).lower()
    for hint, mapped in _MESSAGE_HINTS:
        if hint in msg:
            return mapped
    return None

def handle_exception(action: str, e: Exception) -> AuthResponse:
    logger.exception(f"Erreur {action}")
    return AuthResponse(False, error=localize_remote_error(auth_error_code(e)))
