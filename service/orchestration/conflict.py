"""
Conflict resolution for concurrent writes to the same field.

A resolver is any callable
    resolve(key, existing, candidate, prior, target, context) -> Write
where existing/candidate are Write records carrying their producer's identity
and prior lists the writes chosen by earlier resolutions for that key.
The chosen write becomes the baseline for the next write to the same key.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Write:
    key: str
    path: tuple
    value: Any
    producer: str


@dataclass
class ConflictRecord:
    current: Write
    history: List[Write] = field(default_factory=list)


ConflictResolver = Callable[[str, Write, Write, List[Write], dict, dict], Write]


def last_writer_wins(key, existing, candidate, prior, target, context) -> Write:
    return candidate


class WeightedConflictResolver:
    """
    Static per-field weighting keyed by producer identity.

    weights = {"[0].domain": {"domain": 0.9, "badDomain": 0.3}}

    Producers without a weight count as 0. Ties favor the candidate, so keys
    with no weighting behave exactly like last_writer_wins.
    """

    def __init__(self, weights: Optional[Mapping[str, Mapping[str, float]]] = None):
        self.weights: Dict[str, Dict[str, float]] = {
            key: dict(producers) for key, producers in (weights or {}).items()
        }

    def weight(self, key: str, producer: str) -> float:
        return self.weights.get(key, {}).get(producer, 0)

    def __call__(self, key, existing, candidate, prior, target, context) -> Write:
        if self.weight(key, existing.producer) > self.weight(key, candidate.producer):
            logger.debug(
                "Keeping %s for %s over %s", existing.producer, key, candidate.producer
            )
            return existing
        return candidate
