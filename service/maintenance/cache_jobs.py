"""
Cache maintenance using APScheduler.

Expired entries are dropped lazily on lookup; this interval job also sweeps
entries nobody asks for again so the in-memory cache does not grow unbounded.
AsyncIOScheduler shares FastAPI's event loop, no threads required.
"""

import logging
from typing import Any

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from config import settings

logger = logging.getLogger(__name__)

scheduler = AsyncIOScheduler()


def prune_cache(cache: Any) -> int:
    """Prune the cache if it supports it. Returns the number of entries removed."""
    prune = getattr(cache, "prune", None)
    if prune is None:
        return 0
    removed = prune()
    logger.debug("Cache prune removed %d entries", removed)
    return removed


def start_cache_maintenance(cache: Any) -> None:
    """Start the periodic prune job. Called once on app startup."""
    scheduler.add_job(
        prune_cache,
        trigger="interval",
        seconds=settings.cache_prune_interval_seconds,
        args=[cache],
        id="cache_prune",
        replace_existing=True,
    )
    scheduler.start()
    logger.info("Cache maintenance started (interval=%ds)", settings.cache_prune_interval_seconds)


def stop_cache_maintenance() -> None:
    """Gracefully stop the scheduler. Called on app shutdown."""
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Cache maintenance stopped")
