from typing import Optional

from fastapi import Depends, HTTPException, Request
from fastapi.responses import Response
from starlette.requests import HTTPConnection

from portail.auth import service as auth_service
from portail.auth.models import CurrentUser
from portail.config import COOKIE_SECURE
from .state import get_channel

COOKIE_NAME = "sb_access"

def set_session_cookie(response: Response, access_token: str):
    response.set_cookie(
        key=COOKIE_NAME,
        value=access_token,
        httponly=True,
        secure=COOKIE_SECURE,
        samesite="Lax",
        max_age=60 * 60,
        path="/",
    )

def clear_session_cookie(response: Response):
    response.delete_cookie(COOKIE_NAME, path="/")

def extract_token(conn: HTTPConnection) -> Optional[str]:
    # Hybride: priorité au Bearer, fallback cookie
    auth_header = conn.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        token = auth_header[7:].strip()
        if token:
            return token
    return conn.cookies.get(COOKIE_NAME) or None

async def get_optional_user(request: Request) -> Optional[CurrentUser]:
    """Utilisateur courant ou None (pages publiques, gate de vues)."""
    token = extract_token(request)
    if not token:
        return None
    return await auth_service.resolve_current_user(get_channel(request), token)

async def get_current_user(request: Request, user: Optional[CurrentUser] = Depends(get_optional_user)) -> CurrentUser:
    if user is None:
        if not extract_token(request):
            raise HTTPException(status_code=401, detail="Non authentifié")
        raise HTTPException(status_code=401, detail="Session expirée, veuillez vous connecter")
    return user

def require_user(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    return user
