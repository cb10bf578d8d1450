import logging
import time

from config import settings
from fastapi import APIRouter, HTTPException, Request
from models import (
    HealthResponse,
    HealthStatus,
    PluginInfo,
    PluginListResponse,
    PopulateRequest,
    PopulateResponse,
)
from orchestration.errors import ConfigurationError
from orchestration.leader import Leader

router = APIRouter()
logger = logging.getLogger(__name__)


def get_leader(request: Request) -> Leader:
    """The Leader is built once in the app lifespan and shared by every request."""
    return request.app.state.leader


@router.post("/populate", response_model=PopulateResponse)
async def populate(body: PopulateRequest, request: Request):
    """
    Runs every ready enrichment plugin against the submitted person.

    Always returns 200 with whatever was enriched. A failed plugin or an
    exhausted time budget is reported in `error`, the partial person is still
    returned: downstream consumers decide whether partial data is usable.
    """
    leader = get_leader(request)
    started = time.perf_counter()
    try:
        result = await leader.populate(body.person, body.context)
    except ConfigurationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    elapsed = time.perf_counter() - started

    if result.error is not None:
        logger.info("Populate finished with error after %.3fs: %s", elapsed, result.error)

    return PopulateResponse(
        person=result.target,
        context=result.context,
        error=str(result.error) if result.error is not None else None,
        elapsed_seconds=round(elapsed, 6),
    )


@router.get("/plugins", response_model=PluginListResponse)
def list_plugins(request: Request):
    """Registered plugins in scheduling order (tier, then registration)."""
    plugins = [
        PluginInfo(name=p.name, tier=p.tier, timeout=p.timeout) for p in get_leader(request).plugins
    ]
    return PluginListResponse(total=len(plugins), plugins=plugins)


@router.get("/health", response_model=HealthResponse)
def health(request: Request):
    """
    Lightweight health check. Does NOT call the directory API.

    Status semantics:
      ok       — at least one plugin registered
      degraded — no plugins, every populate call would be a no-op
    """
    leader = get_leader(request)
    plugin_count = len(leader.plugins)
    cache = leader.cache
    return HealthResponse(
        status=HealthStatus.ok if plugin_count else HealthStatus.degraded,
        plugin_count=plugin_count,
        cache_entries=len(cache) if cache is not None else 0,
        max_time_seconds=leader.max_time,
        concurrency=leader.concurrency_limit,
        directory_url=settings.directory_url,
    )
