"""Event bus connecting the host editor to the state engine.

The host publishes document lifecycle and editor activity events; the engine
subscribes at startup and disposes its subscriptions at shutdown.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Generic, TypeVar
from weakref import WeakMethod

if TYPE_CHECKING:  # pragma: no cover - imports for type checking only
    from typing import DefaultDict

    from .state.models import LockIcon

logger = logging.getLogger(__name__)

E = TypeVar("E", bound="Event")

Handler = Callable[[E], None]


@dataclass(slots=True)
class Event:
    """Base class of everything published on an :class:`EventBus`."""


# Event types published too often to log.
_QUIET_EVENT_TYPES: set[type] = set()


# Host events


@dataclass(slots=True)
class DocumentActivated(Event):
    """Emitted when a document becomes the active one in the host.

    Attributes:
        path: Vault-relative path of the activated document.
    """

    path: str


@dataclass(slots=True)
class LayoutSettled(Event):
    """Emitted after the host finished laying out its presentation."""


@dataclass(slots=True)
class EditorChanged(Event):
    """Emitted on edits, caret moves, and scrolling in the active editor.

    Attributes:
        path: Path of the document the change belongs to, if known.
    """

    path: str | None = None


_QUIET_EVENT_TYPES.add(EditorChanged)


@dataclass(slots=True)
class DocumentRenamed(Event):
    """Emitted when a document is moved or renamed.

    Attributes:
        old_path: The previous vault-relative path.
        new_path: The new vault-relative path.
    """

    old_path: str
    new_path: str


@dataclass(slots=True)
class DocumentDeleted(Event):
    """Emitted when a document is deleted.

    Attributes:
        path: The vault-relative path of the removed document.
    """

    path: str


# Engine and UI events


@dataclass(slots=True)
class NoticePosted(Event):
    """Emitted when a short-lived notice should be shown to the user.

    Attributes:
        message: The notice text.
        timeout_ms: How long the notice stays visible.
    """

    message: str
    timeout_ms: int = 3000


@dataclass(slots=True)
class LockStatusChanged(Event):
    """Emitted when the lock indicator switches state.

    Attributes:
        path: Active document the state belongs to, if any.
        icon: The new indicator state.
    """

    path: str | None
    icon: LockIcon


@dataclass(slots=True)
class SettingsChanged(Event):
    """Emitted when settings are modified.

    Attributes:
        settings: A mapping of the changed settings.
    """

    settings: dict[str, Any]


class Subscription:
    """Token returned by :meth:`EventBus.subscribe`; dispose it to unsubscribe."""

    __slots__ = ("_bus", "_event_type", "_handler", "_active")

    def __init__(self, bus: EventBus, event_type: type[Event], handler: Handler) -> None:
        self._bus = bus
        self._event_type = event_type
        self._handler = handler
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def dispose(self) -> None:
        if self._active:
            self._active = False
            self._bus.unsubscribe(self._event_type, self._handler)


Resolver = Callable[[], "Handler | None"]


def _reference(handler: Handler) -> Resolver:
    """Return a resolver for ``handler``.

    Bound methods are held weakly so a subscriber object can be collected
    without disposing its tokens; anything else is held strongly.
    """

    if hasattr(handler, "__self__") and hasattr(handler, "__func__"):
        try:
            return WeakMethod(handler)  # type: ignore[arg-type]
        except TypeError:
            pass
    return lambda: handler


class EventBus(Generic[E]):
    """Synchronous publish/subscribe bus keyed by event class.

    Handlers run in subscription order over a snapshot of the handler list,
    so a handler may dispose its own subscription while being dispatched. A
    raising handler is logged and the remaining handlers still run. Not
    thread-safe; use it from the event loop thread only.
    """

    __slots__ = ("_handlers",)

    def __init__(self) -> None:
        self._handlers: DefaultDict[type[Event], list[Resolver]] = defaultdict(list)

    def subscribe(self, event_type: type[E], handler: Handler[E]) -> Subscription:
        self._handlers[event_type].append(_reference(handler))
        logger.debug("%s subscribed to %s", _describe(handler), event_type.__name__)
        return Subscription(self, event_type, handler)

    def unsubscribe(self, event_type: type[E], handler: Handler[E]) -> None:
        """Remove the first registration of ``handler``; unknown handlers are ignored."""

        resolvers = self._handlers.get(event_type)
        if not resolvers:
            return
        for index, resolver in enumerate(resolvers):
            if resolver() == handler:
                del resolvers[index]
                return

    def publish(self, event: E) -> None:
        event_type = type(event)
        resolvers = self._handlers.get(event_type)
        if not resolvers:
            return
        if event_type not in _QUIET_EVENT_TYPES:
            logger.debug("Publishing %s to %d handler(s)", event_type.__name__, len(resolvers))

        for resolver in list(resolvers):
            handler = resolver()
            if handler is None:
                if resolver in resolvers:
                    resolvers.remove(resolver)
                continue
            try:
                handler(event)
            except Exception:
                logger.exception(
                    "Handler %s failed on %s", _describe(handler), event_type.__name__
                )

    def handler_count(self, event_type: type[E] | None = None) -> int:
        """Number of live registrations, for one event type or overall."""

        if event_type is not None:
            groups = [self._handlers.get(event_type, [])]
        else:
            groups = list(self._handlers.values())
        return sum(1 for group in groups for resolver in group if resolver() is not None)


def _describe(handler: Handler) -> str:
    owner = getattr(handler, "__self__", None)
    name = getattr(handler, "__name__", None) or repr(handler)
    if owner is not None and hasattr(handler, "__func__"):
        return f"{type(owner).__name__}.{name}"
    return name


__all__ = [
    "Event",
    "EventBus",
    "Handler",
    "Subscription",
    "DocumentActivated",
    "LayoutSettled",
    "EditorChanged",
    "DocumentRenamed",
    "DocumentDeleted",
    "NoticePosted",
    "LockStatusChanged",
    "SettingsChanged",
]
