"""
ASGI entrypoint: expose `app` pour les process managers / déploiements
(ex: uvicorn portail.asgi:app, gunicorn -k uvicorn.workers.UvicornWorker).
"""
from portail.app import app

__all__ = ["app"]
