"""
Crunchbase link plugin.

Builds a Crunchbase search URL for the person's company domain. No network
call: the link is deterministic, so this plugin never fails once a domain exists.
"""

from urllib.parse import quote

from enrichment.base import EnrichmentPlugin

SEARCH_URL = "http://www.crunchbase.com/search?query="


def has_domain(person: dict, context: dict) -> bool:
    return person.get("domain") is not None


class CrunchbasePlugin(EnrichmentPlugin):
    name = "crunchbase"

    def ready(self, person: dict, context: dict) -> bool:
        return has_domain(person, context)

    def enrich(self, person: dict, context: dict) -> None:
        company = person.setdefault("company", {})
        company["crunchbase"] = SEARCH_URL + quote(person["domain"])
