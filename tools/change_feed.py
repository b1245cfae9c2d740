"""
Change Feed
Observer primitive behind live subscriptions.

A publisher announces that the data under a key changed; every live
subscription on that key is handed a freshly built snapshot (never a diff).
Deliveries to one subscription are serialized and never overlap, and once
unsubscribe() returns no further delivery reaches the listener.
"""

import logging
import threading
import uuid
from typing import Any, Callable, Dict, Hashable, List, Optional


logger = logging.getLogger(__name__)


Listener = Callable[[Any], None]
SnapshotBuilder = Callable[["Subscription"], Any]


class Subscription:
    """
    Handle for one registered listener.

    Calling the handle (or unsubscribe()) cancels it. It can also be used as
    a context manager.
    """

    def __init__(
        self,
        feed: "ChangeFeed",
        key: Hashable,
        listener: Listener,
        options: Optional[Dict[str, Any]] = None
    ):
        self.id = uuid.uuid4().hex
        self.key = key
        self.listener = listener
        self.options = options or {}
        self.delivered = 0
        self._feed = feed
        self._lock = threading.RLock()
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def deliver(self, build_snapshot: SnapshotBuilder) -> bool:
        """
        Build and deliver one snapshot under the subscription lock.

        Returns False if the subscription was cancelled first.
        """
        with self._lock:
            if not self._active:
                return False
            snapshot = build_snapshot(self)
            try:
                self.listener(snapshot)
            except Exception as e:
                logger.error(f"Listener for {self.key} raised: {e}", exc_info=True)
            self.delivered += 1
            return True

    def unsubscribe(self) -> None:
        # Flag first so a delivery waiting on the lock bails out
        self._active = False
        with self._lock:
            self._feed._remove(self)

    def __call__(self) -> None:
        self.unsubscribe()

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.unsubscribe()


class ChangeFeed:
    """
    Keyed registry of live subscriptions.

    Usage:
        feed = ChangeFeed()
        sub = feed.subscribe("user-1", print)
        feed.publish("user-1", lambda sub: load_snapshot(sub.options))
        sub.unsubscribe()
    """

    def __init__(self):
        self._subscriptions: Dict[Hashable, List[Subscription]] = {}
        self._lock = threading.Lock()

    def subscribe(self, key: Hashable, listener: Listener, **options: Any) -> Subscription:
        subscription = Subscription(self, key, listener, options)
        with self._lock:
            self._subscriptions.setdefault(key, []).append(subscription)
        logger.debug(f"Subscribed {subscription.id} to {key}")
        return subscription

    def subscribers(self, key: Hashable) -> List[Subscription]:
        with self._lock:
            return list(self._subscriptions.get(key, []))

    def subscriber_count(self, key: Optional[Hashable] = None) -> int:
        with self._lock:
            if key is not None:
                return len(self._subscriptions.get(key, []))
            return sum(len(subs) for subs in self._subscriptions.values())

    def publish(self, key: Hashable, build_snapshot: SnapshotBuilder) -> int:
        """
        Push a fresh snapshot to every live subscription on a key.

        A failure while building one subscriber's snapshot is logged and does
        not affect the others or the publisher.

        Returns:
            Number of subscriptions that received a snapshot
        """
        delivered = 0
        for subscription in self.subscribers(key):
            try:
                if subscription.deliver(build_snapshot):
                    delivered += 1
            except Exception as e:
                logger.error(f"Failed to build snapshot for {key}: {e}", exc_info=True)
        return delivered

    def _remove(self, subscription: Subscription) -> None:
        with self._lock:
            subs = self._subscriptions.get(subscription.key)
            if subs and subscription in subs:
                subs.remove(subscription)
                if not subs:
                    del self._subscriptions[subscription.key]
        logger.debug(f"Unsubscribed {subscription.id} from {subscription.key}")
