"""
Lifespan FastAPI: initialisation/arrêt des ressources partagées.
- Rate limiting: FastAPILimiter (Redis), fakeredis en test.
- Canal de documents: Supabase (tables + Realtime) ou mémoire (DOCUMENT_BACKEND=memory).
- Registre des brokers de paiement et observation de site_settings/main.
Variables d'environnement supportées:
  - DISABLE_FASTAPI_LIMITER_INIT_FOR_TESTS=1: désactive complètement le rate limiting (tests)
  - USE_FAKE_REDIS_FOR_TESTS=1: utilise fakeredis (tests)
  - LOCAL_RATE_LIMIT_FALLBACK=1: fallback local en mémoire si l'init échoue
"""
import logging
import os
from contextlib import asynccontextmanager

import redis.asyncio as aioredis
from fastapi import FastAPI
from fastapi_limiter import FastAPILimiter

from portail.checkout.broker import CheckoutBrokerRegistry
from portail.config import CHECKOUT_TIMEOUT_SECONDS, DOCUMENT_BACKEND
from portail.infra.channel import DocumentChannel, InMemoryDocumentChannel
from portail.site.service import SiteSettingsWatcher

logger = logging.getLogger("uvicorn.error")

async def init_rate_limit(app: FastAPI) -> None:
    """
    - En cas d'échec de Redis et sans fallback, le rate limiting est désactivé proprement.
    - Les logs indiquent l'état effectif (enabled/disabled).
    """
    if os.getenv("DISABLE_FASTAPI_LIMITER_INIT_FOR_TESTS") == "1":
        app.state.rate_limit_enabled = False
        logger.info("Rate limiting disabled by DISABLE_FASTAPI_LIMITER_INIT_FOR_TESTS")
        return
    try:
        if os.getenv("USE_FAKE_REDIS_FOR_TESTS") == "1":
            from fakeredis.aioredis import FakeRedis
            r = FakeRedis(decode_responses=True)
        else:
            redis_url = os.getenv("RATE_LIMIT_REDIS_URL", "redis://127.0.0.1:6379/0")
            r = aioredis.from_url(redis_url, encoding="utf-8", decode_responses=True)
        await FastAPILimiter.init(r)
        app.state.rate_limit_enabled = True
        logger.info("Rate limiting enabled")
    except Exception as e:
        if os.getenv("LOCAL_RATE_LIMIT_FALLBACK") == "1":
            app.state.rate_limit_enabled = True
            logger.warning(f"Rate limiting falling back to local in-memory due to init error: {e}")
        else:
            app.state.rate_limit_enabled = False
            logger.warning(f"Rate limiting disabled due to init error: {e}")

async def build_channel() -> DocumentChannel:
    if DOCUMENT_BACKEND == "memory":
        logger.warning("Canal de documents en mémoire (DOCUMENT_BACKEND=memory): données non persistées")
        return InMemoryDocumentChannel()
    from portail.infra.supabase_channel import SupabaseDocumentChannel
    from portail.infra.supabase_client import create_async_supabase
    client = await create_async_supabase()
    logger.info("Canal de documents Supabase prêt")
    return SupabaseDocumentChannel(client)

@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_rate_limit(app)

    channel = await build_channel()
    app.state.channel = channel
    app.state.checkout_registry = CheckoutBrokerRegistry(channel, timeout=CHECKOUT_TIMEOUT_SECONDS)
    watcher = SiteSettingsWatcher(channel)
    await watcher.start()
    app.state.site_settings = watcher
    try:
        yield
    finally:
        watcher.stop()
        await channel.close()
        if getattr(app.state, "rate_limit_enabled", False) and FastAPILimiter.redis is not None:
            await FastAPILimiter.close()
        logger.info("Ressources du portail libérées")
