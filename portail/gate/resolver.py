"""
Gate de session/vue: fonction pure (vue demandée, utilisateur, paramètres du site) -> vue effective.

Règles, par priorité:
  1) maintenance active et utilisateur absent ou non admin -> MAINTENANCE
  2) vue admin demandée sans droits admin                  -> DASHBOARD
  3) utilisateur absent et vue autre que LANDING           -> LANDING
  4) sinon la vue demandée, DASHBOARD si non précisée
Aucune mise en cache: réévaluée à chaque requête, changement d'auth ou de paramètres.
"""
from enum import Enum
from typing import Optional, Union

from portail.auth.models import CurrentUser
from portail.site.models import SiteSettings


class View(str, Enum):
    LANDING = "landing"
    DASHBOARD = "dashboard"
    ADMIN = "admin"
    PROFILE = "profile"
    SUBSCRIPTIONS = "subscriptions"
    SUPPORT = "support"
    PAYMENT_SUCCESS = "payment-success"
    MAINTENANCE = "maintenance"


HOME_VIEW = View.DASHBOARD
DEFAULT_AUTHENTICATED_VIEW = View.DASHBOARD
PUBLIC_VIEW = View.LANDING


def parse_view(value: Union[str, View, None]) -> Optional[View]:
    """Convertit une chaîne en View; None ou valeur inconnue -> None (vue non précisée)."""
    if value is None or isinstance(value, View):
        return value
    try:
        return View(str(value).strip().lower())
    except ValueError:
        return None


def resolve_view(
    requested_view: Union[str, View, None],
    current_user: Optional[CurrentUser],
    site_config: Optional[SiteSettings],
) -> View:
    requested = parse_view(requested_view)
    is_admin = bool(current_user and current_user.is_admin)

    if site_config is not None and site_config.is_maintenance_mode and not is_admin:
        return View.MAINTENANCE

    if requested is View.ADMIN and not is_admin:
        return DEFAULT_AUTHENTICATED_VIEW

    if current_user is None and requested is not PUBLIC_VIEW:
        return PUBLIC_VIEW

    # La vue maintenance n'est jamais demandable directement hors maintenance
    if requested is None or requested is View.MAINTENANCE:
        return HOME_VIEW
    return requested


def navigate_view(
    requested_view: Union[str, View, None],
    current_user: Optional[CurrentUser],
    site_config: Optional[SiteSettings],
) -> View:
    """
    Vue réellement affichée: la redirection de la règle 2 est une navigation,
    sa cible repasse donc par le gate (visiteur anonyme -> LANDING).
    """
    effective = resolve_view(requested_view, current_user, site_config)
    # Les règles convergent en au plus deux passes (admin -> dashboard -> landing)
    for _ in range(len(View)):
        target = resolve_view(effective, current_user, site_config)
        if target is effective:
            break
        effective = target
    return effective
