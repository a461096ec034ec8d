"""
Transaction change fan-out.

Subscribers register per transaction and receive full snapshots. Delivery is
at-least-once with no ordering guarantee: a subscriber must treat each
snapshot as the whole truth as of receipt and never diff it against an
earlier one. Publishing only happens after the database commit that
produced the change.
"""

import logging
import threading
from collections import defaultdict
from typing import Callable, Dict, List

from django.db import transaction

logger = logging.getLogger(__name__)

Snapshot = Dict
Callback = Callable[[Snapshot], None]


class TransactionChangeNotifier:
    def __init__(self):
        self._lock = threading.Lock()
        self._subscribers: Dict[str, List[Callback]] = defaultdict(list)

    def on_transaction_changed(self, transaction_id, callback: Callback) -> Callable[[], None]:
        """Subscribe to one transaction. Returns a callable that unsubscribes."""
        key = str(transaction_id)
        with self._lock:
            self._subscribers[key].append(callback)

        def unsubscribe():
            with self._lock:
                callbacks = self._subscribers.get(key, [])
                if callback in callbacks:
                    callbacks.remove(callback)
                if not callbacks:
                    self._subscribers.pop(key, None)

        return unsubscribe

    def subscriber_count(self, transaction_id) -> int:
        with self._lock:
            return len(self._subscribers.get(str(transaction_id), []))

    def publish(self, snapshot: Snapshot) -> int:
        """Deliver a snapshot now. A failing subscriber does not stop the others."""
        with self._lock:
            callbacks = list(self._subscribers.get(str(snapshot['id']), []))

        delivered = 0
        for callback in callbacks:
            try:
                callback(snapshot)
                delivered += 1
            except Exception:
                logger.exception("Subscriber failed for transaction %s", snapshot['id'])
        return delivered

    def publish_on_commit(self, snapshot: Snapshot) -> None:
        transaction.on_commit(lambda: self.publish(snapshot))


transaction_notifier = TransactionChangeNotifier()
