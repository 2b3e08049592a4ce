from typing import Any, Dict, List

from fastapi import APIRouter, Request

from portail.utils.state import get_channel
from .service import list_active_plans

router = APIRouter(prefix="/api/v1", tags=["Plans"])

@router.get("/plans")
async def api_plans(request: Request) -> List[Dict[str, Any]]:
    """Offres actives, jetons croissants. Erreur du magasin -> 502 avec message localisé."""
    plans = await list_active_plans(get_channel(request))
    return [p.model_dump() for p in plans]
