"""
Email domain plugin.

Derives person.domain from person.email. Everything keyed on the company
(crunchbase links, directory lookups) waits on this field.
"""

from enrichment.base import EnrichmentPlugin


def has_email(person: dict, context: dict) -> bool:
    return person.get("email") is not None


def email_domain(email: str) -> str:
    """Return the lowercased part after the last '@', or '' if there is none."""
    _, sep, domain = email.strip().rpartition("@")
    return domain.lower() if sep else ""


class EmailDomainPlugin(EnrichmentPlugin):
    name = "domain"

    def ready(self, person: dict, context: dict) -> bool:
        return has_email(person, context)

    def enrich(self, person: dict, context: dict) -> None:
        domain = email_domain(person["email"])
        if not domain:
            raise ValueError(f"email has no domain: {person['email']!r}")
        person["domain"] = domain
