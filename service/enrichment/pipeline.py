"""
Enrichment pipeline: wires the plugins into a configured Leader.

Plugins do not declare ordering; each waits on the fields it needs and the
orchestrator runs it as soon as they appear. The same Leader serves every
request, from the API, from tests, or from a script.
"""

import logging
from typing import Optional

from config import Settings, settings
from enrichment.crunchbase import CrunchbasePlugin
from enrichment.directory_lookup import DirectoryLookupPlugin
from enrichment.email_domain import EmailDomainPlugin
from orchestration.cache import InMemoryResultCache
from orchestration.conflict import WeightedConflictResolver
from orchestration.leader import Leader

logger = logging.getLogger(__name__)

# Trust the email-derived domain over anything else that writes the field
FIELD_WEIGHTS = {
    "[0].domain": {"domain": 0.9, "init_person": 0.5},
}


def build_leader(config: Optional[Settings] = None, directory: Optional[DirectoryLookupPlugin] = None) -> Leader:
    config = config or settings
    leader = (
        Leader(max_time=config.max_time_seconds, concurrency=config.concurrency)
        .use(EmailDomainPlugin())
        .use(CrunchbasePlugin())
        .use(directory or DirectoryLookupPlugin(config.directory_url, config.plugin_timeout_seconds))
        .conflict(WeightedConflictResolver(FIELD_WEIGHTS))
        .set_cache(InMemoryResultCache(ttl=config.cache_ttl_seconds))
    )
    logger.info(
        "Leader configured: plugins=%s max_time=%s concurrency=%s",
        [p.name for p in leader.plugins],
        config.max_time_seconds,
        config.concurrency,
    )
    return leader
