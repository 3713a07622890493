"""
Publish/subscribe channel between the core and its observer surfaces.

Delivery is best effort: a subscription buffers a bounded number of events
and drops the oldest on overflow. A subscription that dropped anything
reports ``needs_resync`` and its owner must pull a fresh snapshot.
"""

import copy
import itertools
import threading
import time
from collections import deque
from dataclasses import dataclass
from typing import Any, Callable, Deque, Dict, FrozenSet, List, Optional

from ...utils.logger import get_logger
from ..settings.config import EVENT_BUFFER_SIZE

logger = get_logger(__name__)

BACKEND_LOG_EVENT = "backend-log"
PTT_STATE_EVENT = "ptt_state"
PTT_TRANSCRIPTION_EVENT = "ptt_transcription"
PTT_ERROR_EVENT = "ptt_error"
MODEL_STATUS_EVENT = "model-download-status"

EventHandler = Callable[["BridgeEvent"], None]


@dataclass(frozen=True)
class BridgeEvent:
    name: str
    payload: Any
    sequence: int
    timestamp: float


class Subscription:
    def __init__(
        self,
        bus: "EventBus",
        names: Optional[FrozenSet[str]],
        maxsize: int,
    ):
        self._bus = bus
        self._names = names
        self._buffer: Deque[BridgeEvent] = deque(maxlen=max(1, maxsize))
        self._cond = threading.Condition()
        self._dropped = 0
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def dropped(self) -> int:
        with self._cond:
            return self._dropped

    @property
    def needs_resync(self) -> bool:
        with self._cond:
            return self._dropped > 0

    def accepts(self, name: str) -> bool:
        return self._names is None or name in self._names

    def _deliver(self, event: BridgeEvent) -> None:
        with self._cond:
            if self._closed:
                return
            if len(self._buffer) == self._buffer.maxlen:
                self._dropped += 1
            self._buffer.append(event)
            self._cond.notify_all()

    def get(self, timeout: Optional[float] = None) -> Optional[BridgeEvent]:
        """Pop the oldest buffered event, waiting up to ``timeout`` seconds."""
        with self._cond:
            if not self._buffer and not self._closed:
                self._cond.wait_for(lambda: self._buffer or self._closed, timeout)
            if self._buffer:
                return self._buffer.popleft()
            return None

    def drain(self) -> List[BridgeEvent]:
        with self._cond:
            events = list(self._buffer)
            self._buffer.clear()
            return events

    def mark_synced(self) -> None:
        with self._cond:
            self._dropped = 0

    def close(self) -> None:
        with self._cond:
            self._closed = True
            self._buffer.clear()
            self._cond.notify_all()
        self._bus._remove(self)


class EventBus:
    """
    Fan-out of canonical events to any number of subscribers.

    ``listen`` registers push callbacks invoked in the publisher's thread;
    ``subscribe`` returns a buffered pull subscription. Each subscriber gets
    its own copy of the payload.
    """

    def __init__(self, buffer_size: int = EVENT_BUFFER_SIZE):
        self._lock = threading.Lock()
        self._buffer_size = buffer_size
        self._subscriptions: List[Subscription] = []
        self._handlers: Dict[str, List[EventHandler]] = {}
        self._sequence = itertools.count(1)

    def subscribe(
        self, names=None, maxsize: Optional[int] = None
    ) -> Subscription:
        name_set = frozenset(names) if names is not None else None
        subscription = Subscription(self, name_set, maxsize or self._buffer_size)
        with self._lock:
            self._subscriptions.append(subscription)
        return subscription

    def listen(self, name: str, handler: EventHandler) -> Callable[[], None]:
        with self._lock:
            self._handlers.setdefault(name, []).append(handler)

        def unlisten() -> None:
            with self._lock:
                handlers = self._handlers.get(name, [])
                if handler in handlers:
                    handlers.remove(handler)

        return unlisten

    def publish(self, name: str, payload: Any = None) -> BridgeEvent:
        with self._lock:
            event = BridgeEvent(
                name=name,
                payload=copy.deepcopy(payload),
                sequence=next(self._sequence),
                timestamp=time.time(),
            )
            subscriptions = [s for s in self._subscriptions if s.accepts(name)]
            handlers = list(self._handlers.get(name, []))

        for subscription in subscriptions:
            subscription._deliver(self._copy(event))

        for handler in handlers:
            try:
                handler(self._copy(event))
            except Exception:
                # Below the log buffer's level: a failing backend-log handler
                # must not re-enter itself.
                logger.debug(f"Event handler failed for '{name}'", exc_info=True)

        return event

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscriptions) + sum(
                len(handlers) for handlers in self._handlers.values()
            )

    def _remove(self, subscription: Subscription) -> None:
        with self._lock:
            if subscription in self._subscriptions:
                self._subscriptions.remove(subscription)

    @staticmethod
    def _copy(event: BridgeEvent) -> BridgeEvent:
        return BridgeEvent(
            name=event.name,
            payload=copy.deepcopy(event.payload),
            sequence=event.sequence,
            timestamp=event.timestamp,
        )
