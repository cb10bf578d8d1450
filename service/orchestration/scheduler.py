"""
Scheduler: drives one run from INIT to COMPLETE (or TIMEOUT).

Each run is a single asyncio driver task. It repeatedly:
  1. evaluates the predicates of pending plugins in (tier, registration) order,
  2. admits ready plugins up to the concurrency limit, never past the lowest
     tier that still has a plugin in flight,
  3. waits for the first in-flight plugin to finish,
  4. merges that plugin's proposed writes through the conflict resolver,
until a pass admits nothing and nothing is in flight (the fixpoint).

Sync actions run in worker threads and coroutine actions run as tasks, but every
scheduling decision and every merge happens on the driver, one at a time.
A per-plugin timeout stops waiting for the action without cancelling it. The
global deadline finalizes the run immediately and cancels the driver; anything
that completes afterwards is dropped.
"""

import asyncio
import copy
import functools
import inspect
import logging
from typing import Any, Callable, List, Optional

from orchestration.conflict import ConflictRecord, ConflictResolver, Write, last_writer_wins
from orchestration.errors import ActionError, PluginTimeoutError, RunDeadlineError
from orchestration.observer import control_loop
from orchestration.registry import PluginDescriptor, PluginRegistry
from orchestration.run_context import RunContext, RunResult, RunState, Workspace

logger = logging.getLogger(__name__)

# Outcome marker for a plugin satisfied by the result cache
CACHED = object()


def _is_coroutine_callable(fn: Callable) -> bool:
    return inspect.iscoroutinefunction(fn) or inspect.iscoroutinefunction(
        getattr(fn, "__call__", None)
    )


async def _call_action(action: Callable, workspace: Workspace) -> Any:
    if _is_coroutine_callable(action):
        return await action(workspace.target, workspace.context)
    result = await asyncio.to_thread(action, workspace.target, workspace.context)
    if inspect.isawaitable(result):
        result = await result
    return result


def _discard_late(name: str, task: asyncio.Future) -> None:
    """Retrieve the outcome of an action that outlived its timeout, then drop it."""
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.info("Discarding late failure of plugin %s: %s", name, exc)
    else:
        logger.info("Discarding late completion of plugin %s", name)


def _as_action_error(name: str, exc: BaseException, what: str = "raised") -> ActionError:
    if isinstance(exc, ActionError):
        return exc
    error = ActionError(name, f"plugin '{name}' {what}: {exc!r}")
    error.__cause__ = exc
    return error


class Scheduler:
    def __init__(
        self,
        registry: PluginRegistry,
        resolver: ConflictResolver = last_writer_wins,
        cache: Any = None,
        concurrency: Optional[int] = None,
        max_time: Optional[float] = None,
    ):
        self.descriptors: List[PluginDescriptor] = registry.descriptors()
        self.resolver = resolver
        self.cache = cache
        self.concurrency = concurrency
        self.max_time = max_time

    # ── lifecycle ────────────────────────────────────────────────────────────

    def start(
        self,
        target: dict,
        context: dict,
        callback: Optional[Callable] = None,
        emit: Optional[Callable[..., Any]] = None,
    ) -> RunContext:
        """INIT: build the run context, arm the deadline and start the driver."""
        loop = asyncio.get_running_loop()
        ctx = RunContext(target=target, context=context, pending=list(self.descriptors))
        if emit is not None:
            ctx.emit = emit
        ctx.callback = callback
        ctx.result = loop.create_future()
        ctx.seed()

        if self.max_time is not None:
            ctx.deadline = loop.call_later(self.max_time, self.expire, ctx)

        logger.debug("Run started with %d plugins", len(ctx.pending))
        ctx.emit("run:start", target, context)
        ctx.driver = loop.create_task(self._drive(ctx))
        return ctx

    async def _drive(self, ctx: RunContext) -> None:
        control_loop.set(asyncio.get_running_loop())
        try:
            self._schedule(ctx)
            while ctx.in_flight and not ctx.completed:
                finished, _ = await asyncio.wait(
                    ctx.in_flight, return_when=asyncio.FIRST_COMPLETED
                )
                for task in finished:
                    ctx.in_flight.discard(task)
                    self._settle(ctx, *task.result())
                self._schedule(ctx)
            if not ctx.completed:
                ctx.state = RunState.DRAINING
                self.finalize(ctx, ctx.error)
        except asyncio.CancelledError:
            if not ctx.completed:
                raise
        except Exception as exc:  # pylint: disable=broad-except
            logger.exception("Scheduler failed, finalizing run")
            self.finalize(ctx, ctx.error or exc)

    def finalize(
        self,
        ctx: RunContext,
        error: Optional[BaseException],
        state: RunState = RunState.COMPLETE,
    ) -> bool:
        """Invoke the callback exactly once. Returns False if already finalized."""
        if ctx.completed:
            return False
        ctx.completed = True
        ctx.state = state
        if ctx.deadline is not None:
            ctx.deadline.cancel()

        if ctx.callback is not None:
            try:
                ctx.callback(error, ctx.target, ctx.context)
            except Exception:  # pylint: disable=broad-except
                logger.exception("Run callback raised")
        if ctx.result is not None and not ctx.result.done():
            ctx.result.set_result(RunResult(error, ctx.target, ctx.context))

        logger.debug("Run finished (state=%s, error=%s)", state.value, error)
        ctx.emit("run:end", error, ctx.target, ctx.context)
        return True

    def expire(self, ctx: RunContext, error: Optional[RunDeadlineError] = None) -> None:
        """TIMEOUT: finalize with a deadline error and stop the driver."""
        if ctx.completed:
            return
        error = error or RunDeadlineError(self.max_time)
        logger.warning(
            "Run finalized early: %s (running=%s)", error, [d.name for d in ctx.running]
        )
        ctx.emit("run:timeout", error)
        self.finalize(ctx, error, RunState.TIMEOUT)
        if ctx.driver is not None and not ctx.driver.done():
            ctx.driver.cancel()

    # ── scheduling ───────────────────────────────────────────────────────────

    def _schedule(self, ctx: RunContext) -> None:
        """One SCHEDULING pass over pending plugins in fixed order."""
        if ctx.completed:
            return
        ctx.state = RunState.SCHEDULING
        slots = None if self.concurrency is None else self.concurrency - len(ctx.running)
        # Higher tiers wait while any lower-tier plugin is still in flight.
        barrier = min((d.tier for d in ctx.running), default=None)

        for descriptor in list(ctx.pending):
            if slots is not None and slots <= 0:
                break
            if barrier is not None and descriptor.tier > barrier:
                break
            try:
                ready = descriptor.predicate(ctx.target, ctx.context)
            except Exception as exc:  # pylint: disable=broad-except
                self._fail(ctx, descriptor, _as_action_error(descriptor.name, exc, "predicate raised"))
                continue
            if not ready:
                continue

            ctx.pending.remove(descriptor)
            ctx.running.append(descriptor)
            workspace = Workspace.capture(ctx.target, ctx.context)
            task = asyncio.ensure_future(self._invoke(ctx, descriptor, workspace))
            ctx.in_flight.add(task)
            if slots is not None:
                slots -= 1
            if barrier is None:
                barrier = descriptor.tier

        if ctx.in_flight:
            ctx.state = RunState.EXECUTING

    async def _invoke(self, ctx: RunContext, descriptor: PluginDescriptor, workspace: Workspace):
        """Run one admitted plugin. Returns (descriptor, outcome, workspace); never raises."""
        name = descriptor.name
        if self.cache is not None:
            if await self._cache_get(ctx, name, workspace):
                return descriptor, CACHED, workspace
            workspace = Workspace.capture(workspace.before_target, workspace.before_context)

        ctx.emit("plugin:start", name)
        task = asyncio.ensure_future(_call_action(descriptor.action, workspace))
        finished, _ = await asyncio.wait({task}, timeout=descriptor.timeout)
        if not finished:
            task.add_done_callback(functools.partial(_discard_late, name))
            return descriptor, PluginTimeoutError(name, descriptor.timeout), workspace
        if task.cancelled():
            return descriptor, ActionError(name, f"plugin '{name}' was cancelled"), workspace
        return descriptor, task.exception(), workspace

    def _settle(self, ctx: RunContext, descriptor: PluginDescriptor, outcome: Any, workspace: Workspace) -> None:
        if ctx.completed:
            return
        name = descriptor.name

        if outcome is CACHED:
            self._merge(ctx, name, workspace.proposals(name, assignments=False))
            ctx.resolve(descriptor)
            logger.debug("Plugin %s satisfied from cache", name)
            ctx.emit("plugin:cached", name)
        elif outcome is None:
            self._merge(ctx, name, workspace.proposals(name))
            ctx.resolve(descriptor)
            logger.debug("Plugin %s completed", name)
            ctx.emit("plugin:done", name)
            self._cache_set(ctx, name)
        else:
            self._fail(ctx, descriptor, _as_action_error(name, outcome))

    def _fail(self, ctx: RunContext, descriptor: PluginDescriptor, error: ActionError) -> None:
        logger.warning("Plugin %s failed: %s", descriptor.name, error)
        ctx.record_error(error)
        ctx.resolve(descriptor)
        event = "plugin:timeout" if isinstance(error, PluginTimeoutError) else "plugin:error"
        ctx.emit(event, descriptor.name, error)

    # ── merging ──────────────────────────────────────────────────────────────

    def _merge(self, ctx: RunContext, name: str, proposals: List[Write]) -> None:
        """Route every proposed write through conflict bookkeeping, then commit."""
        for candidate in proposals:
            record = ctx.conflicts.get(candidate.key)
            if record is not None:
                winner = self._contest(ctx, name, record, candidate)
                if winner is None:
                    continue
                if winner is not record.current:
                    ctx.apply(winner)
                record.current = winner
                continue

            overlaps = ctx.overlapping(candidate.path)
            for key in overlaps:
                existing = ctx.conflicts[key].current
                # Adding a field under a dict that was written as a container extends it.
                if len(existing.path) < len(candidate.path) and isinstance(existing.value, dict):
                    continue
                winner = self._contest(ctx, name, ctx.conflicts[key], candidate)
                if winner is None or winner.path != candidate.path:
                    break
                candidate = winner
            else:
                for key in overlaps:
                    del ctx.conflicts[key]
                ctx.conflicts[candidate.key] = ConflictRecord(candidate)
                ctx.apply(candidate)

    def _contest(
        self, ctx: RunContext, name: str, record: ConflictRecord, candidate: Write
    ) -> Optional[Write]:
        """Ask the resolver to choose between a record's current write and candidate."""
        existing = record.current
        if existing.producer == candidate.producer:
            return candidate
        try:
            winner = self.resolver(
                candidate.key,
                existing,
                candidate,
                list(record.history),
                ctx.target,
                ctx.context,
            )
        except Exception as exc:  # pylint: disable=broad-except
            ctx.record_error(_as_action_error(name, exc, f"conflict on {candidate.key} raised"))
            logger.warning("Conflict resolver raised for %s: %s", candidate.key, exc)
            return None
        if not isinstance(winner, Write):
            ctx.record_error(
                ActionError(name, f"conflict resolver returned {winner!r} for {candidate.key}")
            )
            return None
        record.history.append(winner)
        logger.debug(
            "Conflict on %s (held by %s): %s vs %s -> %s",
            candidate.key,
            existing.key,
            existing.producer,
            candidate.producer,
            winner.producer,
        )
        ctx.emit("conflict", candidate.key, existing, candidate, winner)
        return winner

    # ── cache ────────────────────────────────────────────────────────────────

    async def _cache_get(self, ctx: RunContext, name: str, workspace: Workspace) -> bool:
        try:
            hit = self.cache.get(name, workspace.target, workspace.context)
            if inspect.isawaitable(hit):
                hit = await hit
        except Exception as exc:  # pylint: disable=broad-except
            logger.warning("Cache lookup failed for %s, treating as miss: %s", name, exc)
            ctx.emit("cache:error", name, exc)
            return False
        return bool(hit)

    def _cache_set(self, ctx: RunContext, name: str) -> None:
        """Best-effort store; failures are logged and republished, never reported to the run."""
        if self.cache is None:
            return
        task = asyncio.ensure_future(
            self._cache_store(ctx, name, copy.deepcopy(ctx.target), copy.deepcopy(ctx.context))
        )
        ctx.background.add(task)
        task.add_done_callback(ctx.background.discard)

    async def _cache_store(self, ctx: RunContext, name: str, target: dict, context: dict) -> None:
        try:
            result = self.cache.set(name, target, context)
            if inspect.isawaitable(result):
                await result
        except Exception as exc:  # pylint: disable=broad-except
            logger.warning("Cache store failed for %s: %s", name, exc)
            ctx.emit("cache:error", name, exc)
