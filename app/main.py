# app/main.py

import logging
import os
import subprocess
from contextlib import asynccontextmanager

from fastapi import FastAPI

from app.core import logging_config  # noqa: F401  configures logging on import
from app.core.config import get_settings
from app.core.security import require_auth
from app.routes import health, notifications, products
from app.services.dedup_cache import DedupCache

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Run migrations on startup
    if os.getenv('RUN_MIGRATIONS', 'false').lower() == 'true':
        logger.info("Running database migrations...")
        try:
            result = subprocess.run(['alembic', 'upgrade', 'head'], capture_output=True, text=True)
            if result.returncode == 0:
                logger.info("Migrations completed successfully")
            else:
                logger.error(f"Migration failed: {result.stderr}")
        except OSError as e:
            logger.error(f"Migration error: {e}")

    settings = get_settings()
    # One cache per process; automatic dispatches from every request share it
    app.state.dedup_cache = DedupCache(window_ms=settings.ALERT_DEDUPE_WINDOW_MS)
    logger.info(
        "Low stock alerts: discord=%s worker=%s",
        "on" if settings.DISCORD_WEBHOOK_URL else "off",
        "on" if settings.WORKER_INGRESS_URL else "off",
    )
    try:
        yield  # This is where the app runs
    finally:
        app.state.dedup_cache.clear()


app = FastAPI(
    title="Stock Alert Inventory",
    lifespan=lifespan
)


app.include_router(products.router, dependencies=[require_auth()])
app.include_router(notifications.router, dependencies=[require_auth()])
app.include_router(health.router)  # Health check should be accessible without auth
