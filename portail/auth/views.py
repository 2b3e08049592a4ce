from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, Request, Response
from pydantic import BaseModel, EmailStr
from starlette.concurrency import run_in_threadpool

from portail.errors import MESSAGES
from portail.utils.rate_limit import optional_rate_limit
from portail.utils.security import clear_session_cookie, extract_token, require_user, set_session_cookie
from portail.utils.state import get_channel
from .models import CurrentUser
from .service import (
    login as svc_login,
    logout as svc_logout,
    resolve_current_user,
    signup as svc_signup,
)

# --- API Router (/api/v1/auth) ---

api_router = APIRouter(prefix="/api/v1/auth", tags=["Auth API"])

class LoginRequest(BaseModel):
    email: EmailStr
    password: str

class SignupRequest(BaseModel):
    # Email validé par le service (ValidationError -> 400 avec message localisé)
    email: str
    password: str
    confirm_password: str

@api_router.post("/login", dependencies=[Depends(optional_rate_limit(times=5, seconds=60))])
async def api_login(req: LoginRequest, request: Request, response: Response):
    """Connexion (API JSON).
    - Identifiants vérifiés par Supabase Auth, message d'erreur localisé en 401.
    - Profil absent ou compte désactivé: session révoquée, 403.
    - Pose le cookie de session (sb_access).
    """
    result = await run_in_threadpool(svc_login, req.email, req.password)
    if not result.success:
        raise HTTPException(status_code=401, detail=result.error or MESSAGES["invalid_credentials"])

    user = await resolve_current_user(get_channel(request), result.access_token)
    if user is None:
        await run_in_threadpool(svc_logout, result.access_token)
        raise HTTPException(status_code=403, detail=MESSAGES["user_banned"])

    set_session_cookie(response, result.access_token)
    return {"access_token": result.access_token, "token_type": "bearer", "user": user.to_public_dict()}

@api_router.post("/signup", dependencies=[Depends(optional_rate_limit(times=3, seconds=60))])
async def api_signup(req: SignupRequest, request: Request, response: Response):
    """Inscription (API JSON).
    - Validation locale avant tout appel distant (400).
    - Profil users/{uid} + customers/{uid} écrits dans un seul lot (502 si le lot échoue).
    - Avec session: cookie posé; sinon message invitant à confirmer l'email.
    """
    result = await svc_signup(get_channel(request), req.email, req.password, req.confirm_password)
    if not result.success:
        raise HTTPException(status_code=400, detail=result.error or "Erreur inscription")
    if result.access_token:
        set_session_cookie(response, result.access_token)
        return {"access_token": result.access_token, "token_type": "bearer", "user": result.user}
    return {"message": result.error or "Inscription réussie, vérifiez votre email", "user": result.user}

@api_router.post("/logout")
async def api_logout(request: Request, response: Response):
    """Révoque la session (best-effort) et supprime le cookie sb_access."""
    await run_in_threadpool(svc_logout, extract_token(request))
    clear_session_cookie(response)
    return {"message": "Déconnexion réussie"}

# --- Profil courant (/api/v1/me) ---

me_router = APIRouter(prefix="/api/v1", tags=["Users"])

@me_router.get("/me")
def api_me(user: CurrentUser = Depends(require_user)) -> Dict[str, Any]:
    """Utilisateur courant avec son solde de jetons."""
    return user.to_public_dict()
