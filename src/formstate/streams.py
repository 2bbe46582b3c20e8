"""
Trigger streams: one broadcast channel per trigger kind.

The coordinator owns three TriggerStreams (change, blur, submit) and hands
the UI layer their bound emit functions. Pipelines subscribe as independent
consumers. Delivery is synchronous, in subscription order, on the caller's
thread; subscribers that need to do async work schedule it themselves.
"""
from collections import deque
from dataclasses import dataclass
import logging
from typing import Any, Callable, Deque, Generic, List, TypeVar

logger = logging.getLogger(__name__)

E = TypeVar('E')


@dataclass(frozen=True)
class ChangeEvent:
    """A field's value changed."""
    path: str
    value: Any


@dataclass(frozen=True)
class BlurEvent:
    """A field lost focus."""
    path: str
    value: Any


@dataclass(frozen=True)
class SubmitEvent:
    """The form was submitted."""


class Subscription:
    """Handle returned by TriggerStream.subscribe()."""

    def __init__(self, stream: 'TriggerStream', callback: Callable[[Any], None]):
        self._stream = stream
        self._callback = callback
        self.closed = False

    def unsubscribe(self) -> None:
        if self.closed:
            return
        self.closed = True
        self._stream._remove(self._callback)

    def __repr__(self) -> str:
        state = "closed" if self.closed else "open"
        return f"<Subscription {self._stream.name} {state}>"


class TriggerStream(Generic[E]):
    """Broadcast channel for one kind of trigger event.

    Args:
        name: Label used in logs ('change', 'blur', 'submit')
        replay: Number of most recent events delivered to each new subscriber
    """

    def __init__(self, name: str, replay: int = 0):
        if replay < 0:
            raise ValueError(f"replay must be >= 0, got {replay}")
        self.name = name
        self._subscribers: List[Callable[[E], None]] = []
        self._buffer: Deque[E] = deque(maxlen=replay)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    @property
    def emitter(self) -> Callable[[E], None]:
        """Bound emit function handed to the event source."""
        return self.emit

    def subscribe(self, callback: Callable[[E], None]) -> Subscription:
        """Add a consumer. Buffered events (if replay > 0) are delivered first."""
        if self._closed:
            raise RuntimeError(f"cannot subscribe to closed stream {self.name!r}")
        self._subscribers.append(callback)
        for event in list(self._buffer):
            self._deliver(callback, event)
        logger.debug(f"Subscribed to {self.name} stream ({len(self._subscribers)} subscribers)")
        return Subscription(self, callback)

    def _remove(self, callback: Callable[[E], None]) -> None:
        if callback in self._subscribers:
            self._subscribers.remove(callback)
            logger.debug(f"Unsubscribed from {self.name} stream ({len(self._subscribers)} subscribers)")

    def _deliver(self, callback: Callable[[E], None], event: E) -> None:
        try:
            callback(event)
        except Exception as e:
            logger.warning(f"Error in {self.name} subscriber {callback!r}: {e}")

    def emit(self, event: E) -> None:
        """Deliver event to every current subscriber."""
        if self._closed:
            logger.debug(f"Dropped {event!r}: {self.name} stream is closed")
            return
        self._buffer.append(event)
        for callback in list(self._subscribers):
            self._deliver(callback, event)

    def close(self) -> None:
        """Drop all subscribers and buffered events. Later emits are no-ops."""
        self._closed = True
        self._subscribers.clear()
        self._buffer.clear()


class TriggerStreams:
    """The three streams a coordinator owns."""

    def __init__(self, replay: int = 0):
        self.change: TriggerStream[ChangeEvent] = TriggerStream('change', replay)
        self.blur: TriggerStream[BlurEvent] = TriggerStream('blur', replay)
        self.submit: TriggerStream[SubmitEvent] = TriggerStream('submit', replay)

    def close(self) -> None:
        for stream in (self.change, self.blur, self.submit):
            stream.close()

    @property
    def closed(self) -> bool:
        return self.change.closed and self.blur.closed and self.submit.closed
