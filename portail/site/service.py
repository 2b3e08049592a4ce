"""
Observation en continu du document site_settings/main.
- Document absent ou erreur de lecture -> paramètres par défaut (le site reste utilisable).
- Chaque instantané est fusionné sur les défauts puis poussé vers les écouteurs.
"""
import logging
from typing import Callable, List, Optional

from portail.infra.channel import Document, DocumentChannel, Query, Subscription
from .models import SiteSettings, merge_site_settings

logger = logging.getLogger(__name__)

SETTINGS_COLLECTION = "site_settings"
SETTINGS_DOC_ID = "main"

SettingsListener = Callable[[SiteSettings], None]


class SiteSettingsWatcher:
    def __init__(self, channel: DocumentChannel):
        self.channel = channel
        self.settings: SiteSettings = SiteSettings()
        self.loaded = False
        self._listeners: List[SettingsListener] = []
        self._subscription: Optional[Subscription] = None

    def add_listener(self, listener: SettingsListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)
        return _remove

    async def start(self) -> None:
        if self._subscription is not None:
            return
        query = Query.document(SETTINGS_COLLECTION, SETTINGS_DOC_ID)
        try:
            self._subscription = await self.channel.subscribe(query, self._on_snapshot, self._on_error)
        except Exception as e:
            self._on_error(e)

    def stop(self) -> None:
        if self._subscription is not None:
            self._subscription.close()
            self._subscription = None

    def _on_snapshot(self, docs: List[Document]) -> None:
        if docs:
            self._publish(merge_site_settings(docs[0].data))
        else:
            logger.info("Document site_settings/main introuvable, paramètres par défaut utilisés.")
            self._publish(SiteSettings())

    def _on_error(self, exc: BaseException) -> None:
        logger.error("Erreur de lecture des paramètres du site: %s", exc)
        self._publish(SiteSettings())

    def _publish(self, settings: SiteSettings) -> None:
        self.settings = settings
        self.loaded = True
        for listener in list(self._listeners):
            try:
                listener(settings)
            except Exception:
                logger.exception("Écouteur de paramètres en échec")
