"""
Observer surface: a minimal event emitter plus namespaced republishing.

Anything exposing on(event, handler) and emit(event, *args) is Observable.
Listeners registered for "*" receive every event as (event, *args), which is
how a sub-plugin's events are republished as "<name>:<event>".

Sync actions run in worker threads. Events they emit are forwarded to the
event loop bound in control_loop, so listeners only ever run on that loop.
"""

import asyncio
import logging
from collections import defaultdict
from contextvars import ContextVar
from typing import Any, Callable, Dict, List, Optional, Protocol, runtime_checkable

logger = logging.getLogger(__name__)

WILDCARD = "*"

Handler = Callable[..., Any]

# Loop that owns the listeners of the run being driven in this context
control_loop: ContextVar[Optional[asyncio.AbstractEventLoop]] = ContextVar("control_loop", default=None)


@runtime_checkable
class Observable(Protocol):
    def on(self, event: str, handler: Handler) -> Any: ...

    def emit(self, event: str, *args: Any) -> Any: ...


class EventEmitter:
    def __init__(self) -> None:
        self._listeners: Dict[str, List[Handler]] = defaultdict(list)

    def on(self, event: str, handler: Handler) -> "EventEmitter":
        self._listeners[event].append(handler)
        return self

    subscribe = on

    def once(self, event: str, handler: Handler) -> "EventEmitter":
        def _once(*args: Any) -> None:
            self.off(event, _once)
            handler(*args)

        return self.on(event, _once)

    def off(self, event: str, handler: Handler) -> "EventEmitter":
        listeners = self._listeners.get(event, [])
        if handler in listeners:
            listeners.remove(handler)
        return self

    def listener_count(self, event: str) -> int:
        return len(self._listeners.get(event, []))

    def emit(self, event: str, *args: Any) -> bool:
        """Call every handler for event, then wildcard handlers. Returns True if any ran."""
        handlers = list(self._listeners.get(event, []))
        wildcard = list(self._listeners.get(WILDCARD, [])) if event != WILDCARD else []
        for handler in handlers:
            self._call(handler, event, args)
        for handler in wildcard:
            self._call(handler, event, (event,) + args)
        return bool(handlers or wildcard)

    @staticmethod
    def _call(handler: Handler, event: str, args: tuple) -> None:
        try:
            handler(*args)
        except Exception:  # pylint: disable=broad-except
            logger.exception("Listener for '%s' raised", event)


def _running_on(loop: asyncio.AbstractEventLoop) -> bool:
    try:
        return asyncio.get_running_loop() is loop
    except RuntimeError:
        return False


def is_observable(obj: Any) -> bool:
    return isinstance(obj, Observable) and callable(obj.on) and callable(obj.emit)


def proxy_events(source: Any, name: str, sink: EventEmitter) -> bool:
    """
    Republish every event of source on sink as "<name lowercased>:<event>".

    Returns False (and subscribes nothing) when source is not observable.
    """
    if source is sink or not is_observable(source):
        return False
    prefix = name.lower()

    def _forward(event: str, *args: Any) -> None:
        loop = control_loop.get()
        if loop is not None and not _running_on(loop):
            loop.call_soon_threadsafe(sink.emit, f"{prefix}:{event}", *args)
        else:
            sink.emit(f"{prefix}:{event}", *args)

    source.on(WILDCARD, _forward)
    logger.debug("Proxying events from %s", prefix)
    return True
