"""
Lead event fan-out — in-process publish/subscribe for live viewers.

Each subscriber owns a bounded FIFO queue, so events reach every live
subscriber in publish order. A subscriber whose queue is full (a stalled or
vanished viewer) or that has been closed is dropped on the next publish;
the publisher never sees an error.
"""
import logging
import queue
import threading
import uuid

logger = logging.getLogger('services.fanout')


class Subscription:
    """Handle returned by LeadEventBroker.subscribe()."""

    def __init__(self, maxsize=100):
        self.id = uuid.uuid4().hex[:12]
        self._queue = queue.Queue(maxsize=maxsize)
        self.closed = False

    def deliver(self, event):
        if self.closed:
            raise queue.Full
        self._queue.put_nowait(event)

    def get(self, timeout=None):
        """Next event, or None if nothing arrived within timeout seconds."""
        try:
            return self._queue.get(timeout=timeout)
        except queue.Empty:
            return None

    def close(self):
        self.closed = True

    def __repr__(self):
        return f'<Subscription {self.id}{" closed" if self.closed else ""}>'


class LeadEventBroker:
    """At-least-once broadcast of qualifying-lead events to connected viewers."""

    def __init__(self):
        self._subscribers = set()
        self._lock = threading.Lock()

    def subscribe(self, maxsize=100) -> Subscription:
        sub = Subscription(maxsize=maxsize)
        with self._lock:
            self._subscribers.add(sub)
        logger.info("Viewer %s connected (%d live)", sub.id, self.subscriber_count)
        return sub

    def unsubscribe(self, sub: Subscription):
        sub.close()
        with self._lock:
            self._subscribers.discard(sub)
        logger.info("Viewer %s disconnected (%d live)", sub.id, self.subscriber_count)

    @property
    def subscriber_count(self):
        with self._lock:
            return len(self._subscribers)

    def publish(self, event) -> int:
        """Deliver event to every live subscriber. Returns the delivery count."""
        with self._lock:
            targets = list(self._subscribers)

        delivered = 0
        dead = []
        for sub in targets:
            try:
                sub.deliver(event)
                delivered += 1
            except queue.Full:
                dead.append(sub)

        if dead:
            with self._lock:
                for sub in dead:
                    sub.close()
                    self._subscribers.discard(sub)
            logger.warning("Dropped %d unresponsive viewer(s)", len(dead))

        return delivered
