"""
Plugin registry: validated descriptors in a fixed scheduling order.

The registry is pure data. It rejects malformed registrations up front with
ConfigurationError so nothing has to be re-validated while a run is scheduling.
Scheduling order is tier ascending, then registration order.
"""

import inspect
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Iterator, List, Optional

from orchestration.errors import ConfigurationError

logger = logging.getLogger(__name__)

Predicate = Callable[[dict, dict], bool]
Action = Callable[[dict, dict], Any]


@dataclass(frozen=True, eq=False)
class PluginDescriptor:
    name: str
    predicate: Predicate = field(repr=False)
    action: Action = field(repr=False)
    tier: int = 0
    timeout: Optional[float] = None
    sequence: int = 0

    @property
    def order_key(self) -> tuple:
        return (self.tier, self.sequence)


def _accepts_two_positional(fn: Callable) -> bool:
    try:
        signature = inspect.signature(fn)
    except (TypeError, ValueError):
        # Some builtins and C extensions expose no signature; trust them.
        return True
    try:
        signature.bind(None, None)
    except TypeError:
        return False
    return True


def _check_callable(value: Any, role: str) -> None:
    if not callable(value):
        raise ConfigurationError(f"{role} must be callable, got {type(value).__name__}")
    if not _accepts_two_positional(value):
        raise ConfigurationError(f"{role} must accept (target, context)")


def _derive_name(action: Action) -> str:
    """
    Fall back to the action's declared name.

    Renaming a function silently changes cache keys and conflict weights,
    so callers are warned and should pass name= explicitly.
    """
    name = getattr(action, "__name__", None)
    if not name or name == "<lambda>":
        raise ConfigurationError("plugin name is required for anonymous actions")
    logger.warning("Plugin registered without an explicit name, using '%s'", name)
    return name


class PluginRegistry:
    def __init__(self) -> None:
        self._descriptors: List[PluginDescriptor] = []

    def register(
        self,
        predicate: Predicate,
        action: Action,
        tier: int = 0,
        timeout: Optional[float] = None,
        name: Optional[str] = None,
    ) -> PluginDescriptor:
        """Validate and store a plugin. Raises ConfigurationError on bad input."""
        _check_callable(predicate, "predicate")
        _check_callable(action, "action")

        if tier is None:
            tier = 0
        if isinstance(tier, bool) or not isinstance(tier, int):
            raise ConfigurationError(f"tier must be an int, got {tier!r}")
        if timeout is not None:
            if isinstance(timeout, bool) or not isinstance(timeout, (int, float)) or timeout <= 0:
                raise ConfigurationError(f"timeout must be a positive number, got {timeout!r}")
            timeout = float(timeout)

        if name is None:
            name = _derive_name(action)
        elif not isinstance(name, str) or not name.strip():
            raise ConfigurationError("plugin name must be a non-empty string")

        descriptor = PluginDescriptor(
            name=name,
            predicate=predicate,
            action=action,
            tier=tier,
            timeout=timeout,
            sequence=len(self._descriptors),
        )
        self._descriptors.append(descriptor)
        logger.debug("Registered plugin %s (tier=%d, timeout=%s)", name, tier, timeout)
        return descriptor

    def descriptors(self) -> List[PluginDescriptor]:
        return sorted(self._descriptors, key=lambda d: d.order_key)

    def __iter__(self) -> Iterator[PluginDescriptor]:
        return iter(self.descriptors())

    def __len__(self) -> int:
        return len(self._descriptors)
