"""
Leader: fluent façade over the registry and scheduler.

    leader = (
        Leader(max_time=5)
        .when(has_email, domain, name="domain")
        .when(has_domain, crunchbase, name="crunchbase")
        .conflict(WeightedConflictResolver({"[0].domain": {"domain": 0.9}}))
        .set_cache(InMemoryResultCache(ttl=3600))
    )
    result = await leader.populate({"email": "ilya@segment.io"})

Configuration is done once; every run() snapshots it into its own Scheduler,
so runs are independent of each other and of later reconfiguration.
"""

import inspect
import logging
from typing import Any, Callable, List, Optional

from orchestration.cache import ResultCache, validate_cache
from orchestration.conflict import ConflictResolver, last_writer_wins
from orchestration.errors import ConfigurationError, RunCancelledError
from orchestration.observer import EventEmitter, proxy_events
from orchestration.registry import Action, PluginDescriptor, PluginRegistry, Predicate
from orchestration.run_context import RunContext, RunResult, RunState
from orchestration.scheduler import Scheduler

logger = logging.getLogger(__name__)


def _positive_or_none(value: Any, what: str, integral: bool = False) -> Any:
    if value is None:
        return None
    kinds = (int,) if integral else (int, float)
    if isinstance(value, bool) or not isinstance(value, kinds) or value <= 0:
        raise ConfigurationError(f"{what} must be a positive {'int' if integral else 'number'}, got {value!r}")
    return value


class RunHandle(EventEmitter):
    """Observable, awaitable and cancellable handle for a single run."""

    def __init__(self, leader: "Leader"):
        super().__init__()
        self.leader = leader
        self._scheduler: Optional[Scheduler] = None
        self._ctx: Optional[RunContext] = None

    def __await__(self):
        return self._ctx.result.__await__()

    @property
    def state(self) -> RunState:
        return self._ctx.state

    @property
    def error(self) -> Optional[BaseException]:
        return self._ctx.error

    def done(self) -> bool:
        return self._ctx.completed

    def cancel(self) -> bool:
        """Finalize the run now with RunCancelledError. False if it already finished."""
        if self._ctx.completed:
            return False
        self._scheduler.expire(self._ctx, RunCancelledError())
        return True


class Leader(EventEmitter):
    def __init__(self, max_time: Optional[float] = None, concurrency: Optional[int] = None):
        super().__init__()
        self.max_time = _positive_or_none(max_time, "max_time")
        self.registry = PluginRegistry()
        self._concurrency: Optional[int] = None
        self._resolver: ConflictResolver = last_writer_wins
        self._cache: Optional[ResultCache] = None
        self.concurrency(concurrency)

    # ── configuration ────────────────────────────────────────────────────────

    def when(
        self,
        predicate: Predicate,
        action: Action,
        tier: int = 0,
        timeout: Optional[float] = None,
        name: Optional[str] = None,
    ) -> "Leader":
        """Register action to run once predicate(target, context) is true."""
        descriptor = self.registry.register(predicate, action, tier, timeout, name)
        self.proxy(action, descriptor.name)
        return self

    register = when

    def use(self, plugin: Any, tier: Optional[int] = None, timeout: Optional[float] = None) -> "Leader":
        """
        Register a plugin object exposing name, ready(person, context) and
        enrich(person, context). Its own tier/timeout attributes are used
        unless overridden here.
        """
        if not callable(getattr(plugin, "ready", None)):
            raise ConfigurationError("plugin.ready must be a function")
        if not callable(getattr(plugin, "enrich", None)):
            raise ConfigurationError("plugin.enrich must be a function")
        name = getattr(plugin, "name", None)
        if not isinstance(name, str):
            raise ConfigurationError("plugin.name must be a string")
        if tier is None:
            tier = getattr(plugin, "tier", 0)
        if timeout is None:
            timeout = getattr(plugin, "timeout", None)
        self.registry.register(plugin.ready, plugin.enrich, tier, timeout, name)
        self.proxy(plugin, name)
        return self

    def proxy(self, source: Any, name: str) -> "Leader":
        """Republish events of an observable action (or its owner) as '<name>:<event>'."""
        if not proxy_events(source, name, self):
            owner = getattr(source, "__self__", None)
            if owner is not None:
                proxy_events(owner, name, self)
        return self

    def concurrency(self, limit: Optional[int]) -> "Leader":
        """Cap the number of plugins executing at once. None means unlimited."""
        self._concurrency = _positive_or_none(limit, "concurrency", integral=True)
        return self

    set_concurrency_limit = concurrency

    def conflict(self, resolver: Optional[ConflictResolver]) -> "Leader":
        if resolver is None:
            self._resolver = last_writer_wins
            return self
        if not callable(resolver):
            raise ConfigurationError("conflict resolver must be callable")
        try:
            inspect.signature(resolver).bind(*([None] * 6))
        except TypeError as exc:
            raise ConfigurationError(
                "conflict resolver must accept (key, existing, candidate, prior, target, context)"
            ) from exc
        except ValueError:
            pass
        self._resolver = resolver
        return self

    set_conflict_resolver = conflict

    def set_cache(self, cache: Optional[ResultCache]) -> "Leader":
        if cache is not None:
            validate_cache(cache)
            proxy_events(cache, getattr(cache, "name", None) or "cache", self)
        self._cache = cache
        return self

    @property
    def plugins(self) -> List[PluginDescriptor]:
        return self.registry.descriptors()

    @property
    def concurrency_limit(self) -> Optional[int]:
        return self._concurrency

    @property
    def cache(self) -> Optional[ResultCache]:
        return self._cache

    # ── running ──────────────────────────────────────────────────────────────

    def run(
        self,
        target: dict,
        context: Optional[dict] = None,
        callback: Optional[Callable[[Optional[BaseException], dict, dict], Any]] = None,
    ) -> RunHandle:
        """
        Start a run on the current event loop and return its handle.

        callback(error, target, context) is invoked exactly once. Awaiting the
        handle yields the same outcome as a RunResult.
        """
        if not isinstance(target, dict):
            raise ConfigurationError("Person must be a dict.")
        if context is None:
            context = {}
        elif not isinstance(context, dict):
            raise ConfigurationError("context must be a dict")

        handle = RunHandle(self)

        def emit(event: str, *args: Any) -> None:
            handle.emit(event, *args)
            self.emit(event, *args)

        scheduler = Scheduler(
            self.registry,
            resolver=self._resolver,
            cache=self._cache,
            concurrency=self._concurrency,
            max_time=self.max_time,
        )
        handle._scheduler = scheduler
        handle._ctx = scheduler.start(target, context, callback, emit)
        return handle

    async def populate(self, person: dict, context: Optional[dict] = None) -> RunResult:
        return await self.run(person, context)
