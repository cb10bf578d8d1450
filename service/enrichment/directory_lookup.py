"""
Company directory plugin with retry and exponential backoff.

Looks the person's domain up in the company directory API and stores the
profile under person.company.profile.

Retry strategy (tenacity):
  - Up to 3 attempts
  - Short exponential backoff with jitter, so retries fit inside the plugin timeout
  - Only retries on 5xx and network errors; 4xx means the request itself is wrong

The plugin is observable: it emits "request" and "response" events, which the
orchestrator republishes as "directory:request" / "directory:response".
"""

import logging
from typing import Optional

import httpx
from config import settings
from enrichment.base import EnrichmentPlugin
from models import CompanyProfile
from orchestration.observer import EventEmitter
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential_jitter,
)

logger = logging.getLogger(__name__)


def _is_retryable(exc: BaseException) -> bool:
    """
    Retry on network errors and 5xx responses.
    Do NOT retry on 4xx: those are client errors.
    """
    if isinstance(exc, httpx.TimeoutException):
        return True
    if isinstance(exc, httpx.NetworkError):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code >= 500
    return False


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential_jitter(initial=0.2, max=1),
    retry=retry_if_exception(_is_retryable),
    before_sleep=before_sleep_log(logger, logging.WARNING),
    reraise=True,
)
async def fetch_company(client: httpx.AsyncClient, base_url: str, domain: str) -> Optional[CompanyProfile]:
    """
    Fetch the directory profile for domain. Returns None on 404.

    Raises the last exception if all retries are exhausted; the orchestrator
    records it as the plugin's failure.
    """
    response = await client.get(f"{base_url}/companies", params={"domain": domain})
    if response.status_code == 404:
        return None
    response.raise_for_status()
    return CompanyProfile(**response.json())


class DirectoryLookupPlugin(EnrichmentPlugin, EventEmitter):
    name = "directory"

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        EventEmitter.__init__(self)
        self.base_url = (base_url or settings.directory_url).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.plugin_timeout_seconds
        self._transport = transport

    def ready(self, person: dict, context: dict) -> bool:
        company = person.get("company")
        has_profile = isinstance(company, dict) and "profile" in company
        return person.get("domain") is not None and not has_profile

    async def enrich(self, person: dict, context: dict) -> None:
        domain = person["domain"]
        self.emit("request", domain)
        logger.info("Looking up company directory (domain=%s)", domain)

        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            profile = await fetch_company(client, self.base_url, domain)

        self.emit("response", domain, profile is not None)
        context.setdefault("lookups", []).append(self.name)
        if profile is None:
            logger.info("No directory entry for %s", domain)
            return
        person.setdefault("company", {})["profile"] = profile.model_dump()
