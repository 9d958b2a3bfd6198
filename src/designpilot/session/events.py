"""Outbound events and the bus that delivers them to the embedding host.

Hosts subscribe to concrete event classes, or to :class:`Event` itself to
receive everything (handy for forwarding to a panel or logging).
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import asdict, dataclass, field
from typing import Any, Callable, DefaultDict, Generic, TypeVar
from weakref import WeakMethod

LOGGER = logging.getLogger(__name__)

E = TypeVar("E", bound="Event")

Handler = Callable[[E], None]


@dataclass(slots=True)
class Event:
    """Base class for every outbound event."""

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-ready payload tagged with the event name."""

        payload = asdict(self)
        payload["type"] = type(self).__name__
        return payload


@dataclass(slots=True)
class FocusChanged(Event):
    """The selection or current page changed.

    Attributes:
        nodes: ``{id, name, type}`` for each selected node.
        page_name: Name of the current page.
    """

    nodes: list[dict[str, str]] = field(default_factory=list)
    page_name: str = ""


@dataclass(slots=True)
class ThinkingStarted(Event):
    """A model request is in flight."""


@dataclass(slots=True)
class ProposalReady(Event):
    summary: str
    code: str
    warnings: list[str] = field(default_factory=list)


@dataclass(slots=True)
class ClarificationNeeded(Event):
    question: str


@dataclass(slots=True)
class PlainReply(Event):
    text: str


@dataclass(slots=True)
class ExecutionSucceeded(Event):
    summary: str


@dataclass(slots=True)
class ExecutionFailed(Event):
    error: str


@dataclass(slots=True)
class SettingsSnapshot(Event):
    """Current settings with the credential reduced to a preview."""

    has_api_key: bool
    key_preview: str | None
    model: str
    custom_rules: str
    default_custom_rules: str
    creative_design_mode: bool


@dataclass(slots=True)
class GenericError(Event):
    message: str
    error_code: str | None = None


@dataclass(slots=True)
class ConnectionTestResult(Event):
    success: bool
    error: str | None = None


class EventBus(Generic[E]):
    """A typed publish-subscribe bus.

    Handlers registered for a class also receive its subclasses. Bound methods
    are held weakly so a discarded panel does not keep receiving events. A
    handler that raises is logged and the remaining handlers still run.
    """

    __slots__ = ("_handlers",)

    def __init__(self) -> None:
        self._handlers: DefaultDict[type[Event], list[_HandlerRef]] = defaultdict(list)

    def subscribe(self, event_type: type[E], handler: Handler[E]) -> None:
        self._handlers[event_type].append(_HandlerRef.create(handler))
        LOGGER.debug("Subscribed handler %s to event type %s", _handler_name(handler), event_type.__name__)

    def unsubscribe(self, event_type: type[E], handler: Handler[E]) -> None:
        handlers = self._handlers.get(event_type)
        if handlers is None:
            return
        for index, handler_ref in enumerate(handlers):
            if handler_ref.matches(handler):
                handlers.pop(index)
                return

    def publish(self, event: Event) -> None:
        delivered = 0
        for event_type in type(event).__mro__:
            if not (isinstance(event_type, type) and issubclass(event_type, Event)):
                continue
            handlers = self._handlers.get(event_type)
            if not handlers:
                continue
            dead: list[int] = []
            for index, handler_ref in enumerate(list(handlers)):
                handler = handler_ref.resolve()
                if handler is None:
                    dead.append(index)
                    continue
                delivered += 1
                try:
                    handler(event)
                except Exception:
                    LOGGER.exception(
                        "Handler %s raised exception for event %s",
                        _handler_name(handler),
                        type(event).__name__,
                    )
            for index in reversed(dead):
                handlers.pop(index)
        LOGGER.debug("Published %s to %d handler(s)", type(event).__name__, delivered)

    def clear(self) -> None:
        self._handlers.clear()

    def handler_count(self, event_type: type[Event] | None = None) -> int:
        if event_type is not None:
            return len(self._handlers.get(event_type, []))
        return sum(len(handlers) for handlers in self._handlers.values())


class _HandlerRef:
    """Weak reference for bound methods, strong reference for plain callables."""

    __slots__ = ("_ref", "_is_weak")

    def __init__(self, handler_ref: Any, is_weak: bool) -> None:
        self._ref = handler_ref
        self._is_weak = is_weak

    @classmethod
    def create(cls, handler: Callable[..., Any]) -> "_HandlerRef":
        if hasattr(handler, "__self__") and hasattr(handler, "__func__"):
            try:
                return cls(WeakMethod(handler), is_weak=True)  # type: ignore[arg-type]
            except TypeError:
                pass
        return cls(handler, is_weak=False)

    def resolve(self) -> Callable[..., Any] | None:
        if not self._is_weak:
            return self._ref
        return self._ref()

    def matches(self, handler: Callable[..., Any]) -> bool:
        resolved = self.resolve()
        return resolved is not None and resolved == handler


def _handler_name(handler: Callable[..., Any]) -> str:
    if hasattr(handler, "__self__") and hasattr(handler, "__func__"):
        return f"{type(handler.__self__).__name__}.{handler.__func__.__name__}"
    return getattr(handler, "__name__", repr(handler))


__all__ = [
    "Event",
    "EventBus",
    "Handler",
    "FocusChanged",
    "ThinkingStarted",
    "ProposalReady",
    "ClarificationNeeded",
    "PlainReply",
    "ExecutionSucceeded",
    "ExecutionFailed",
    "SettingsSnapshot",
    "GenericError",
    "ConnectionTestResult",
]
