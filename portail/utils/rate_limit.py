"""
Limitation de débit des routes sensibles (connexion, inscription, démarrage d'un paiement).

- fastapi-limiter (Redis) quand le lifespan l'a initialisé.
- LOCAL_RATE_LIMIT_FALLBACK=1: fenêtre glissante en mémoire (dev sans Redis).
- app.state.rate_limit_enabled = False: aucune limite (tests).
Clé: hash du cookie de session si présent, sinon IP, toujours suffixée par le chemin.
"""
import hashlib
import logging
import os
import time
from typing import Any, Dict, List
from urllib.parse import urlparse

from fastapi import HTTPException, Request, Response

from .security import COOKIE_NAME

logger = logging.getLogger(__name__)


def rate_limit_key(request: Request) -> str:
    path = request.url.path
    token = request.cookies.get(COOKIE_NAME)
    if token:
        digest = hashlib.sha256(token.encode("utf-8")).hexdigest()[:16]
        return f"user:{digest}:{path}"
    ip = request.client.host if request.client else "local"
    return f"ip:{ip}:{path}"


def _local_hit(request: Request, key: str, times: int, seconds: int) -> None:
    now = time.time()
    store: Dict[str, List[float]] = getattr(request.app.state, "_rl_store", None) or {}
    hits = [t for t in store.get(key, []) if now - t < seconds]
    if len(hits) >= times:
        raise HTTPException(status_code=429, detail="Trop de requêtes, réessayez dans un instant.")
    hits.append(now)
    store[key] = hits
    request.app.state._rl_store = store


def optional_rate_limit(times: int, seconds: int):
    async def _dep(request: Request, response: Response):
        if os.getenv("LOCAL_RATE_LIMIT_FALLBACK") == "1":
            _local_hit(request, rate_limit_key(request), times, seconds)
            return

        if getattr(request.app.state, "rate_limit_enabled", None) is False:
            return

        from fastapi_limiter import FastAPILimiter
        from fastapi_limiter.depends import RateLimiter

        if getattr(FastAPILimiter, "redis", None) is None:
            return

        async def _identifier(req: Request) -> str:
            return rate_limit_key(req)

        try:
            await RateLimiter(times=times, seconds=seconds, identifier=_identifier)(request, response)
        except HTTPException:
            raise
        except Exception:
            # Redis indisponible en cours de route: pas de 429 en production
            logger.warning("Rate limiter indisponible, requête laissée passer", exc_info=True)
    return _dep


def rate_limit_health_info(request: Request) -> Dict[str, Any]:
    from fastapi_limiter import FastAPILimiter

    enabled = getattr(request.app.state, "rate_limit_enabled", None)
    ready = getattr(FastAPILimiter, "redis", None) is not None
    info: Dict[str, Any] = {
        "enabled": (bool(enabled) if enabled is not None else None),
        "ready": ready,
        "backend": "redis" if ready else ("memory" if os.getenv("LOCAL_RATE_LIMIT_FALLBACK") == "1" else None),
    }
    redis_url = os.getenv("RATE_LIMIT_REDIS_URL")
    if ready and redis_url:
        p = urlparse(redis_url)
        info["redis"] = {"scheme": p.scheme, "host": p.hostname, "port": p.port}
    return info
