"""
Gestionnaires d'exceptions.
- HTTPException 401/403: redirection vers l'accueil pour les pages HTML, JSON pour l'API.
- PortailError: statut de la taxonomie (400/401/500/502/504), corps {"detail", "code"}.
"""
import logging
import urllib.parse

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse, RedirectResponse
from starlette.status import HTTP_303_SEE_OTHER

from portail.errors import PortailError

logger = logging.getLogger(__name__)

def _wants_html(request: Request) -> bool:
    accept = (request.headers.get("accept") or "").lower()
    return "text/html" in accept and not request.url.path.startswith("/api/")

def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(HTTPException)
    async def html_redirect_on_auth_errors(request: Request, exc: HTTPException):
        if exc.status_code in (401, 403) and _wants_html(request):
            detail = str(getattr(exc, "detail", "")) or (
                "Veuillez vous connecter" if exc.status_code == 401 else "Accès interdit"
            )
            msg = urllib.parse.quote_plus(detail)
            return RedirectResponse(url=f"/?error={msg}", status_code=HTTP_303_SEE_OTHER)
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail}, headers=getattr(exc, "headers", None))

    @app.exception_handler(PortailError)
    async def portail_error_handler(request: Request, exc: PortailError):
        if exc.status_code >= 500:
            logger.error("Erreur %s sur %s: %s", exc.code, request.url.path, exc.message)
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.message, "code": exc.code})
