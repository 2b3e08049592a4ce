"""
Contexte de session explicite: utilisateur courant + paramètres du site.

Remplace l'accès global (« currentUser », « settings ») par un objet transmis aux composants
(broker de paiement, cloche de notifications, gate de vues). Les écouteurs ne sont notifiés
qu'en cas de changement effectif.
"""
import logging
from typing import Callable, List, Optional

from portail.auth.models import CurrentUser
from portail.site.models import SiteSettings

logger = logging.getLogger(__name__)

UserListener = Callable[[Optional[CurrentUser]], None]
SettingsListener = Callable[[SiteSettings], None]


class SessionContext:
    def __init__(self, current_user: Optional[CurrentUser] = None, site_config: Optional[SiteSettings] = None):
        self.current_user = current_user
        self.site_config = site_config or SiteSettings()
        self._user_listeners: List[UserListener] = []
        self._settings_listeners: List[SettingsListener] = []

    @property
    def is_authenticated(self) -> bool:
        return self.current_user is not None

    def on_user_changed(self, listener: UserListener) -> None:
        self._user_listeners.append(listener)

    def on_site_config_changed(self, listener: SettingsListener) -> None:
        self._settings_listeners.append(listener)

    def set_user(self, user: Optional[CurrentUser]) -> None:
        if user == self.current_user:
            return
        self.current_user = user
        for listener in list(self._user_listeners):
            try:
                listener(user)
            except Exception:
                logger.exception("Écouteur d'authentification en échec")

    def set_site_config(self, config: SiteSettings) -> None:
        if config == self.site_config:
            return
        self.site_config = config
        for listener in list(self._settings_listeners):
            try:
                listener(config)
            except Exception:
                logger.exception("Écouteur de paramètres du site en échec")
