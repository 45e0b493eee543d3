"""Outbound notifications for finalized payments.

The engine publishes a ``PaymentFinalized`` message only after the terminal
update has committed. Delivery happens on a background thread, so a slow or
failing listener can never block or undo a transition.
"""
import logging
import queue
import threading
from dataclasses import asdict, dataclass
from typing import Optional

import requests

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PaymentFinalized:
    order_reference: str
    correlation_id: str
    status: str
    result_code: str
    result_description: str
    amount: int
    payer_address: str
    finalized_at: str

    @classmethod
    def from_intent(cls, intent) -> "PaymentFinalized":
        return cls(
            order_reference=intent.order_reference,
            correlation_id=intent.correlation_id,
            status=intent.status,
            result_code=intent.result_code,
            result_description=intent.result_description,
            amount=intent.amount,
            payer_address=intent.payer_address,
            finalized_at=intent.finalized_at.isoformat(),
        )


class Notifier:
    """Listener for finalized payments. The default only logs."""

    def publish(self, message: PaymentFinalized) -> None:
        logger.info(
            "Payment %s for order %s finalized as %s",
            message.correlation_id, message.order_reference, message.status,
        )


class WebhookNotifier(Notifier):
    """POSTs each message as JSON to a downstream listener URL."""

    def __init__(self, url: str, timeout: float = 10.0,
                 session: Optional[requests.Session] = None):
        self.url = url
        self.timeout = timeout
        self.session = session or requests.Session()

    def publish(self, message: PaymentFinalized) -> None:
        response = self.session.post(self.url, json=asdict(message), timeout=self.timeout)
        response.raise_for_status()


class QueuedNotifier(Notifier):
    """Hands messages to a worker thread that drives the wrapped notifier."""

    def __init__(self, target: Notifier):
        self.target = target
        self._queue: "queue.Queue[Optional[PaymentFinalized]]" = queue.Queue()
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()

    def start(self):
        with self._lock:
            if self._thread is None:
                self._thread = threading.Thread(
                    target=self._run, name="payment-notifier", daemon=True
                )
                self._thread.start()

    def stop(self, timeout: float = 5.0):
        with self._lock:
            thread, self._thread = self._thread, None
        if thread is not None:
            self._queue.put(None)
            thread.join(timeout)

    def publish(self, message: PaymentFinalized) -> None:
        # Served without a lifespan the worker was never started
        self.start()
        self._queue.put(message)

    def join(self):
        """Block until every queued message has been delivered or dropped."""
        self._queue.join()

    def _run(self):
        while True:
            message = self._queue.get()
            try:
                if message is None:
                    return
                self.target.publish(message)
            except Exception:
                logger.exception(
                    "Notification for payment %s was not delivered",
                    message.correlation_id,
                )
            finally:
                self._queue.task_done()
