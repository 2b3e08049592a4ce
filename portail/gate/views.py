"""
Pages HTML: chaque requête passe par navigate_view (jamais de cache de la vue effective).
- GET /                 accueil; ?session_id=... demande la vue payment-success (retour Stripe)
- GET /app/{view}       vue demandée explicitement
- GET /api/v1/views/resolve?requested=...   vue effective en JSON (client JS)
"""
import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import HTMLResponse

from portail.auth.models import CurrentUser
from portail.errors import RemoteError
from portail.plans.service import list_active_plans
from portail.site.models import SiteSettings
from portail.tracking.pixels import head_snippets
from portail.utils.security import get_optional_user
from portail.utils.state import get_channel, get_site_settings
from portail.utils.templates import templates
from .resolver import View, navigate_view, parse_view

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Pages"])

_PLAN_VIEWS = {View.LANDING, View.SUBSCRIPTIONS}

def _pick(bundle: Dict[str, str], lang: str) -> str:
    return bundle.get(lang) or bundle.get("en") or next(iter(bundle.values()), "")

async def _render(
    request: Request,
    requested: Optional[str],
    user: Optional[CurrentUser],
    settings: SiteSettings,
    session_id: Optional[str] = None,
):
    effective = navigate_view(requested, user, settings)
    lang = request.query_params.get("lang", "en")
    context: Dict[str, Any] = {
        "view": effective.value,
        "requested": requested,
        "user": user.to_public_dict() if user else None,
        "settings": settings,
        "lang": lang,
        "site_name": _pick(settings.site_name, lang),
        "site_subtitle": _pick(settings.site_subtitle, lang),
        "meta_description": _pick(settings.meta_description, lang),
        "seo_keywords": _pick(settings.seo_keywords, lang),
        "pixels": head_snippets(settings.ad_pixels),
    }

    if effective is View.MAINTENANCE:
        return templates.TemplateResponse(request, "maintenance.html", context, status_code=503)

    if effective is View.PAYMENT_SUCCESS:
        context["session_id"] = session_id or request.query_params.get("session_id")
        return templates.TemplateResponse(request, "payment_success.html", context)

    plans: List[Dict[str, Any]] = []
    plans_error: Optional[str] = None
    if effective in _PLAN_VIEWS:
        try:
            plans = [p.model_dump() for p in await list_active_plans(get_channel(request))]
        except RemoteError as e:
            plans_error = e.message
    context.update({"plans": plans, "plans_error": plans_error})
    return templates.TemplateResponse(request, "view.html", context)

@router.get("/", response_class=HTMLResponse)
async def home(
    request: Request,
    session_id: Optional[str] = None,
    user: Optional[CurrentUser] = Depends(get_optional_user),
    settings: SiteSettings = Depends(get_site_settings),
):
    requested = View.PAYMENT_SUCCESS.value if session_id else None
    return await _render(request, requested, user, settings, session_id=session_id)

@router.get("/app/{view}", response_class=HTMLResponse)
async def app_view(
    request: Request,
    view: str,
    user: Optional[CurrentUser] = Depends(get_optional_user),
    settings: SiteSettings = Depends(get_site_settings),
):
    return await _render(request, view, user, settings)

@router.get("/api/v1/views/resolve")
async def api_resolve_view(
    requested: Optional[str] = None,
    user: Optional[CurrentUser] = Depends(get_optional_user),
    settings: SiteSettings = Depends(get_site_settings),
) -> Dict[str, Any]:
    parsed = parse_view(requested)
    return {
        "requested": parsed.value if parsed else None,
        "effective": navigate_view(parsed, user, settings).value,
        "maintenance": settings.is_maintenance_mode,
    }
