"""
Accès aux ressources partagées posées sur app.state par le lifespan.
Utilisables comme dépendances FastAPI, ou appelées directement avec une WebSocket.
"""
from fastapi import Request

from portail.checkout.broker import CheckoutBrokerRegistry
from portail.infra.channel import DocumentChannel
from portail.site.models import SiteSettings


def get_channel(request: Request) -> DocumentChannel:
    return request.app.state.channel

def get_checkout_registry(request: Request) -> CheckoutBrokerRegistry:
    return request.app.state.checkout_registry

def get_site_settings(request: Request) -> SiteSettings:
    watcher = getattr(request.app.state, "site_settings", None)
    return watcher.settings if watcher is not None else SiteSettings()
