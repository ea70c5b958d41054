"""Application factory for the captcha service."""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import Depends, FastAPI

from .config import CaptchaSettings
from .engine import CaptchaEngine
from .errors import StoreUnavailable
from .fastapi import create_captcha_router, get_engine, install_exception_handlers, write_resp
from .kv import KeyValueStore, MemoryKeyValueStore, RedisKeyValueStore
from .log import setup_logging
from .puzzle import HttpPuzzleGenerator
from .store import ChallengeStore

logger = logging.getLogger(__name__)


def build_kv(settings: CaptchaSettings) -> KeyValueStore:
    """Redis when ``redis_url`` is set, otherwise the in-process store."""
    if settings.redis_url:
        return RedisKeyValueStore.from_url(settings.redis_url, atomic=settings.redis_atomic_take)
    logger.warning("No redis_url configured, challenges are kept in process memory")
    return MemoryKeyValueStore()


def create_app(
    settings: Optional[CaptchaSettings] = None,
    engine: Optional[CaptchaEngine] = None,
) -> FastAPI:
    """
    Create the FastAPI application.

    Args:
        settings: Service settings (default: read from the environment)
        engine: Pre-built engine. When given, the application owns no
            resources and the lifespan only attaches it.

    Returns:
        Configured FastAPI application
    """
    if settings is None:
        settings = CaptchaSettings()
    setup_logging(settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if engine is not None:
            yield
            return

        if not settings.puzzle_url:
            raise RuntimeError("MALL_CAPTCHA_PUZZLE_URL must be set")
        kv = build_kv(settings)
        generator = HttpPuzzleGenerator(settings.puzzle_url, timeout=settings.puzzle_timeout)
        app.state.captcha_engine = CaptchaEngine(
            generator, ChallengeStore(kv, key_prefix=settings.key_prefix), settings
        )
        logger.info("Captcha service started (prefix=%s)", settings.key_prefix)
        try:
            yield
        finally:
            await generator.close()
            await kv.close()
            logger.info("Captcha service stopped")

    app = FastAPI(title="mall-captcha", lifespan=lifespan)
    if engine is not None:
        app.state.captcha_engine = engine
    install_exception_handlers(app)
    app.include_router(create_captcha_router())

    @app.get("/healthz")
    async def healthz(captcha_engine: CaptchaEngine = Depends(get_engine)):
        if not await captcha_engine.ping():
            raise StoreUnavailable("store did not answer ping")
        return write_resp({"status": "ok"})

    return app
