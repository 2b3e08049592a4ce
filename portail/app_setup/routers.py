"""
Registre central des routers.
- Pages: gate de vues (/, /app/{view}), redirection de paiement
- API v1: auth, me, plans, checkout, résolution de vue
- WebSocket: notifications
- Health
"""
from fastapi import FastAPI

from portail.auth.views import api_router as auth_api_router, me_router
from portail.checkout.views import router as checkout_router
from portail.feed.views import router as notifications_router
from portail.gate.views import router as pages_router
from portail.health.router import router as health_router
from portail.plans.views import router as plans_router

def register_routers(app: FastAPI) -> None:
    # Pages web (HTML)
    app.include_router(pages_router)
    # API v1
    app.include_router(auth_api_router)
    app.include_router(me_router)
    app.include_router(plans_router)
    app.include_router(checkout_router)
    # Temps réel
    app.include_router(notifications_router)
    # Health & monitoring
    app.include_router(health_router)
