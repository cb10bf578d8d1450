"""
Abstract base class for all enrichment plugins.

Adding a new enrichment source = new file implementing ready() and enrich().
The orchestrator calls ready() whenever the person changes and runs enrich()
once it returns True; the plugin never needs to know what runs before it.
"""

from abc import ABC, abstractmethod
from typing import Optional


class EnrichmentPlugin(ABC):
    name: str
    tier: int = 0
    timeout: Optional[float] = None

    @abstractmethod
    def ready(self, person: dict, context: dict) -> bool:
        """Pure check over the current person/context. Called repeatedly."""

    @abstractmethod
    def enrich(self, person: dict, context: dict) -> None:
        """
        Add fields to person (and optionally context) in place.
        Raise to report failure; other plugins keep running.
        """
