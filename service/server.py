"""
FastAPI application entry point.

Startup sequence (via lifespan):
  1. Build the Leader once: plugins, conflict weights, result cache
  2. Start APScheduler to prune expired cache entries

Every POST /populate is an independent run against the shared Leader.
"""

import logging
import sys
from contextlib import asynccontextmanager

import uvicorn
from api.routes import router
from config import settings
from enrichment.pipeline import build_leader
from fastapi import FastAPI
from maintenance.cache_jobs import start_cache_maintenance, stop_cache_maintenance

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
    stream=sys.stdout,
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(application: FastAPI):
    """Manage startup and shutdown lifecycle."""
    logger.info("Starting Leader person enrichment service")

    leader = build_leader()
    leader.on("*", lambda event, *args: logger.debug("event %s", event))
    application.state.leader = leader

    start_cache_maintenance(leader.cache)

    yield  # Application runs here

    stop_cache_maintenance()
    logger.info("Service shutdown complete")


app = FastAPI(
    title="Leader Person Enrichment Service",
    description=(
        "Enriches a person record by running predicate-gated plugins "
        "(email domain, Crunchbase link, company directory) until no further "
        "plugin can run, within a global time budget."
    ),
    version="1.0.0",
    lifespan=lifespan,
)

app.include_router(router)


if __name__ == "__main__":
    uvicorn.run("server:app", host="0.0.0.0", port=8000, reload=False)
