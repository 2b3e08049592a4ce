"""
WebSocket /ws/notifications: pousse la liste complète des notifications à chaque instantané.

Messages serveur:
  {"type": "session", "authenticated": bool}
  {"type": "notifications", "items": [...]}      (liste complète, jamais un delta)
Messages client:
  {"token": "<jwt>"}   ré-authentifie (le flux est rouvert si l'identité change)
  {"token": null}      déconnexion (le flux est fermé, liste vide)
"""
import asyncio
import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from portail.auth import service as auth_service
from portail.auth.models import CurrentUser
from portail.utils.security import extract_token
from portail.utils.state import get_channel
from .notifications import NotificationBell, NotificationRecord

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Notifications"])


@router.websocket("/ws/notifications")
async def notifications_ws(websocket: WebSocket):
    await websocket.accept()
    channel = get_channel(websocket)
    lang = websocket.query_params.get("lang", "fr")
    outbox: "asyncio.Queue[Dict[str, Any]]" = asyncio.Queue()

    def _on_change(items: List[NotificationRecord]) -> None:
        outbox.put_nowait({"type": "notifications", "items": [i.localized(lang) for i in items]})

    bell = NotificationBell(channel, on_change=_on_change)

    async def _identify(token: Optional[str]) -> None:
        user: Optional[CurrentUser] = None
        if token:
            user = await auth_service.resolve_current_user(channel, token)
        await bell.on_user_changed(user)
        outbox.put_nowait({"type": "session", "authenticated": user is not None})
        if user is None:
            outbox.put_nowait({"type": "notifications", "items": []})

    async def _sender() -> None:
        # Un seul émetteur: les envois ne se chevauchent jamais
        while True:
            message = await outbox.get()
            await websocket.send_json(message)

    async def _receiver() -> None:
        await _identify(extract_token(websocket))
        while True:
            try:
                message = await websocket.receive_json()
            except ValueError:
                logger.warning("notifications.ws message illisible ignoré")
                continue
            if isinstance(message, dict) and "token" in message:
                await _identify(message.get("token") or None)

    tasks = {asyncio.create_task(_sender()), asyncio.create_task(_receiver())}
    try:
        done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
    finally:
        bell.deactivate()
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    for task in done:
        if task.cancelled():
            continue
        exc = task.exception()
        if exc is None or isinstance(exc, WebSocketDisconnect):
            logger.info("notifications.ws déconnexion")
            continue
        logger.error("notifications.ws arrêt sur erreur", exc_info=exc)
        try:
            await websocket.close(code=1011)
        except RuntimeError:
            logger.debug("notifications.ws déjà fermé")
