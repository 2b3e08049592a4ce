from typing import Optional
from urllib.parse import urlparse

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import HTMLResponse, JSONResponse
from pydantic import BaseModel

from portail.auth.models import CurrentUser
from portail.utils.rate_limit import optional_rate_limit
from portail.utils.security import require_user
from portail.utils.state import get_checkout_registry, get_site_settings
from portail.utils.templates import templates
from .broker import CheckoutStatus, NavigationContext
from .redirect import require_publishable_key

router = APIRouter(tags=["Checkout"])

DEFAULT_RETURN_PATH = "/app/subscriptions"

# Statut HTTP par issue du paiement
_STATUS_CODES = {
    CheckoutStatus.SUCCEEDED: 200,
    CheckoutStatus.FAILED: 502,
    CheckoutStatus.TIMED_OUT: 504,
    CheckoutStatus.CONFIG_ERROR: 500,
}

class CheckoutRequest(BaseModel):
    price_id: str = ""
    current_url: Optional[str] = None

def navigation_from_request(request: Request, current_url: Optional[str]) -> NavigationContext:
    """Origine de la requête; la page courante doit être sur la même origine, sinon page des offres."""
    origin = str(request.base_url).rstrip("/")
    candidate = current_url or request.headers.get("referer") or ""
    parsed = urlparse(candidate)
    if not candidate or f"{parsed.scheme}://{parsed.netloc}" != origin:
        candidate = f"{origin}{DEFAULT_RETURN_PATH}"
    return NavigationContext(origin=origin, current_url=candidate)

@router.post("/api/v1/checkout", dependencies=[Depends(optional_rate_limit(times=5, seconds=60))])
async def api_checkout(body: CheckoutRequest, request: Request, user: CurrentUser = Depends(require_user)):
    """Démarre un paiement et attend la réponse de l'extension (session Stripe ou erreur).
    - 400 sans offre, 401 sans session, 409 si un paiement est déjà en cours pour cet utilisateur.
    - Succès: {sessionId, publishableKey, redirectUrl} pour la page de redirection.
    """
    broker = get_checkout_registry(request).for_user(user)
    outcome = await broker.initiate_checkout(body.price_id, navigation_from_request(request, body.current_url))
    if outcome.status is CheckoutStatus.ALREADY_PROCESSING:
        raise HTTPException(status_code=409, detail=outcome.message)
    return JSONResponse(status_code=_STATUS_CODES[outcome.status], content=outcome.to_dict())

@router.get("/paiement/redirection", response_class=HTMLResponse)
def checkout_redirect_page(request: Request, session_id: str = ""):
    """Page relais: Stripe.js redirectToCheckout({sessionId}) avec la clé publiable."""
    session_id = (session_id or "").strip()
    if not session_id:
        raise HTTPException(status_code=400, detail="Session de paiement manquante")
    key = require_publishable_key(get_checkout_registry(request).publishable_key)
    return templates.TemplateResponse(
        request,
        "checkout_redirect.html",
        {"session_id": session_id, "publishable_key": key, "settings": get_site_settings(request)},
    )
