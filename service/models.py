"""
Pydantic models: the data contracts for the service.

Separating models from routes lets the API, the directory plugin and the
tests share schemas without circular imports.
"""

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

# ── Upstream contract (what the mock directory API returns) ──────────────────


class CompanyProfile(BaseModel):
    """Matches the mock directory response schema exactly."""

    domain: str
    name: str
    industry: str
    employees: int


# ── API request / response models ────────────────────────────────────────────


class PopulateRequest(BaseModel):
    person: Dict[str, Any]
    context: Dict[str, Any] = Field(default_factory=dict)


class PopulateResponse(BaseModel):
    person: Dict[str, Any]
    context: Dict[str, Any]
    error: Optional[str] = None
    elapsed_seconds: float


class PluginInfo(BaseModel):
    name: str
    tier: int
    timeout: Optional[float] = None


class PluginListResponse(BaseModel):
    total: int
    plugins: List[PluginInfo]


class HealthStatus(str, Enum):
    ok = "ok"
    degraded = "degraded"


class HealthResponse(BaseModel):
    status: HealthStatus
    plugin_count: int
    cache_entries: int
    max_time_seconds: Optional[float] = None
    concurrency: Optional[int] = None
    directory_url: str
