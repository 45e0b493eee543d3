import logging
import threading
from typing import Optional

from mpesa_service.engine import PaymentEngine

logger = logging.getLogger(__name__)


class ReconciliationSweeper:
    """Runs ``PaymentEngine.sweep_expired`` every ``interval`` seconds."""

    def __init__(self, engine: PaymentEngine, interval: float):
        self.engine = engine
        self.interval = interval
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def start(self):
        if self.interval <= 0 or self._thread is not None:
            return
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._run, name="reconciliation-sweeper", daemon=True
        )
        self._thread.start()
        logger.info("Reconciliation sweeper started, every %ss", self.interval)

    def stop(self, timeout: float = 5.0):
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    def run_once(self):
        report = self.engine.sweep_expired()
        if report.expired or report.skipped:
            logger.info(
                "Reconciliation sweep expired %d intent(s), skipped %d",
                report.expired, report.skipped,
            )
        return report

    def _run(self):
        while not self._stop.wait(self.interval):
            try:
                self.run_once()
            except Exception:
                # Keep sweeping; the next tick retries the same intents
                logger.exception("Reconciliation sweep failed")
