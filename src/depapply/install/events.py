"""Package lifecycle notifications.

Two audiences see the same events in the same order: the observer list owned
by one pipeline instance, and the process-wide ``NotificationChannel``.
``PackageEventDispatcher.fire`` is the only call site for both, observers
first, then the channel.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional

from ..versioning.models import PackageIdentity

logger = logging.getLogger(__name__)


class PackageEvent(Enum):
    """Lifecycle points at which notifications are fired."""
    INSTALLING = "installing"
    INSTALLED = "installed"
    UNINSTALLING = "uninstalling"
    UNINSTALLED = "uninstalled"
    REFERENCE_ADDED = "reference_added"
    REFERENCE_REMOVED = "reference_removed"


@dataclass(frozen=True)
class PackageEventArgs:
    """Payload passed to every observer."""
    identity: PackageIdentity
    install_path: str
    project_name: str


Observer = Callable[[PackageEvent, PackageEventArgs], None]


class NotificationChannel:
    """Many-subscriber publish/subscribe channel."""

    def __init__(self) -> None:
        self._subscribers: List[Observer] = []
        self._lock = threading.Lock()

    def subscribe(self, observer: Observer) -> Observer:
        """Register ``observer``; returns it so it can be used as a decorator."""
        with self._lock:
            if observer not in self._subscribers:
                self._subscribers.append(observer)
        return observer

    def unsubscribe(self, observer: Observer) -> None:
        with self._lock:
            if observer in self._subscribers:
                self._subscribers.remove(observer)

    def publish(self, event: PackageEvent, args: PackageEventArgs) -> None:
        with self._lock:
            subscribers = list(self._subscribers)
        for subscriber in subscribers:
            subscriber(event, args)

    def clear(self) -> None:
        with self._lock:
            self._subscribers.clear()

    def __len__(self) -> int:
        return len(self._subscribers)


_channel: Optional[NotificationChannel] = None
_channel_lock = threading.Lock()


def init_channel() -> NotificationChannel:
    """Create the process-wide channel for a run (idempotent)."""
    global _channel  # pylint: disable=global-statement
    with _channel_lock:
        if _channel is None:
            _channel = NotificationChannel()
        return _channel


def get_channel() -> NotificationChannel:
    """The process-wide channel, created on first use."""
    return _channel if _channel is not None else init_channel()


def teardown_channel() -> None:
    """Drop every subscriber and discard the process-wide channel."""
    global _channel  # pylint: disable=global-statement
    with _channel_lock:
        if _channel is not None:
            _channel.clear()
        _channel = None


class PackageEventDispatcher:
    """Fires an event to the instance observers and then to the channel."""

    def __init__(self, channel: Optional[NotificationChannel] = None):
        self.observers: List[Observer] = []
        self._channel = channel

    @property
    def channel(self) -> NotificationChannel:
        return self._channel if self._channel is not None else get_channel()

    def fire(self, event: PackageEvent, args: PackageEventArgs) -> None:
        logger.debug("Package event %s for %s", event.value, args.identity)
        for observer in list(self.observers):
            observer(event, args)
        self.channel.publish(event, args)
