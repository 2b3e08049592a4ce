from typing import Any, Dict

from fastapi import APIRouter, Request

from portail.config import DOCUMENT_BACKEND
from portail.utils.rate_limit import rate_limit_health_info

router = APIRouter(prefix="/health", tags=["Health"])

@router.get("")
def health_root(request: Request) -> Dict[str, Any]:
    watcher = getattr(request.app.state, "site_settings", None)
    registry = getattr(request.app.state, "checkout_registry", None)
    return {
        "ok": True,
        "document_backend": DOCUMENT_BACKEND,
        "site_settings_loaded": bool(watcher and watcher.loaded),
        "pending_checkouts": len(registry.pending) if registry else 0,
        "rate_limit": rate_limit_health_info(request),
    }
