import logging
from typing import List

from portail.errors import RemoteError, remote_error_from
from portail.infra.channel import DocumentChannel
from .models import Plan
from .repository import fetch_active_plan_documents

logger = logging.getLogger(__name__)

INDEX_ERROR_MARKERS = ("failed-precondition", "requires an index")


def _plans_error(exc: BaseException) -> RemoteError:
    text = f"{getattr(exc, 'code', '') or ''} {exc}".lower()
    if any(marker in text for marker in INDEX_ERROR_MARKERS):
        return RemoteError(code="store/failed-precondition", cause=exc)
    err = remote_error_from(exc, fallback_code="plans/fetch-failed")
    if err.code in ("store/failed-precondition", "plans/fetch-failed"):
        return err
    return RemoteError(code="plans/fetch-failed", cause=exc)


async def list_active_plans(channel: DocumentChannel) -> List[Plan]:
    """
    Offres actives triées par nombre de jetons croissant.
    - Une offre illisible est ignorée (journalisée).
    - Erreur d'index -> message dédié, toute autre erreur -> message générique des offres.
    """
    try:
        docs = await fetch_active_plan_documents(channel)
    except Exception as e:
        logger.exception("Erreur de chargement des offres")
        raise _plans_error(e) from e

    plans: List[Plan] = []
    for doc in docs:
        try:
            plans.append(Plan.from_document(doc))
        except ValueError as e:
            logger.warning("Offre ignorée id=%s: %s", doc.id, e)
    plans.sort(key=lambda p: p.tokens)
    return plans
