"""Payment intent lifecycle: initiation, callback correlation and timeouts.

An intent is created ``pending`` only after the gateway has accepted the STK
push and issued a correlation id (CheckoutRequestID). It leaves ``pending``
exactly once, either through the provider callback or through the timeout
sweep, and both paths go through the store's conditional update.
"""
import logging
import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from mpesa_service.daraja import DarajaClient
from mpesa_service.errors import (
    AlreadyFinalized,
    DuplicateKey,
    IntentNotFound,
    InvalidRequest,
    ProviderError,
    SubmissionFailed,
)
from mpesa_service.models import PaymentIntent, PENDING, SUCCEEDED, FAILED
from mpesa_service.notifications import Notifier, PaymentFinalized
from mpesa_service.store import IntentStore

logger = logging.getLogger(__name__)

PAYER_ADDRESS_PATTERN = re.compile(r"^254[17]\d{8}$")

TIMEOUT_RESULT_CODE = "TIMEOUT"
TIMEOUT_RESULT_DESCRIPTION = "timeout, no callback received"

# Callback outcomes; every one of them is acknowledged to the provider
FINALIZED = "finalized"
DUPLICATE = "duplicate"
UNKNOWN = "unknown"


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def status_for_result_code(result_code: int) -> str:
    return SUCCEEDED if result_code == 0 else FAILED


@dataclass(frozen=True)
class CallbackAck:
    correlation_id: str
    outcome: str


@dataclass(frozen=True)
class SweepReport:
    expired: int = 0
    skipped: int = 0


class PaymentEngine:
    def __init__(
        self,
        store: IntentStore,
        provider: DarajaClient,
        notifier: Optional[Notifier] = None,
        pending_timeout_seconds: float = 300.0,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.provider = provider
        self.notifier = notifier or Notifier()
        self.pending_timeout = timedelta(seconds=pending_timeout_seconds)
        self.clock = clock

    def initiate(self, amount: int, payer_address: str, order_reference: str) -> PaymentIntent:
        self._validate(amount, payer_address, order_reference)

        try:
            submission = self.provider.submit(amount, payer_address, order_reference)
        except ProviderError as exc:
            logger.warning("Payment for order %s not started: %s", order_reference, exc)
            raise SubmissionFailed(exc) from exc

        intent = PaymentIntent(
            correlation_id=submission.correlation_id,
            order_reference=order_reference,
            secondary_provider_id=submission.secondary_provider_id,
            amount=amount,
            payer_address=payer_address,
            status=PENDING,
            created_at=self.clock(),
        )
        try:
            self.store.create(intent)
        except DuplicateKey:
            logger.critical(
                "Gateway issued correlation id %s twice (order %s)",
                submission.correlation_id, order_reference,
            )
            raise

        logger.info(
            "Payment %s pending for order %s", intent.correlation_id, order_reference
        )
        return intent

    def handle_callback(self, correlation_id: str, result_code: int,
                        result_description: str) -> CallbackAck:
        try:
            result_code = int(result_code)
        except (TypeError, ValueError):
            raise InvalidRequest(f"result code {result_code!r} is not numeric")

        try:
            self.store.find_by_correlation_id(correlation_id)
        except IntentNotFound:
            logger.warning(
                "Callback for unknown correlation id %s (code %s: %s)",
                correlation_id, result_code, result_description,
            )
            return CallbackAck(correlation_id, UNKNOWN)

        try:
            intent = self.store.apply_terminal_update(
                correlation_id,
                status_for_result_code(result_code),
                str(result_code),
                result_description,
                self.clock(),
            )
        except AlreadyFinalized:
            logger.info("Duplicate callback for %s ignored", correlation_id)
            return CallbackAck(correlation_id, DUPLICATE)

        self._notify(intent)
        return CallbackAck(correlation_id, FINALIZED)

    def query_status(self, order_reference: str) -> PaymentIntent:
        return self.store.find_by_order_reference(order_reference)

    def sweep_expired(self) -> SweepReport:
        """Fail every intent that has waited longer than the pending timeout."""
        now = self.clock()
        expired = skipped = 0
        for correlation_id in self.store.find_stale_pending(now - self.pending_timeout):
            try:
                intent = self.store.apply_terminal_update(
                    correlation_id,
                    FAILED,
                    TIMEOUT_RESULT_CODE,
                    TIMEOUT_RESULT_DESCRIPTION,
                    now,
                )
            except AlreadyFinalized:
                # The real callback got there first
                skipped += 1
                continue
            expired += 1
            logger.warning("Payment %s timed out without a callback", correlation_id)
            self._notify(intent)
        return SweepReport(expired=expired, skipped=skipped)

    def _validate(self, amount, payer_address, order_reference):
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise InvalidRequest("amount must be a positive whole number")
        if not isinstance(payer_address, str) or not PAYER_ADDRESS_PATTERN.match(payer_address):
            raise InvalidRequest("payer_address must look like 2547XXXXXXXX")
        if not isinstance(order_reference, str) or not order_reference.strip():
            raise InvalidRequest("order_reference is required")

    def _notify(self, intent: PaymentIntent):
        try:
            self.notifier.publish(PaymentFinalized.from_intent(intent))
        except Exception:
            logger.exception(
                "Could not publish finalization of %s", intent.correlation_id
            )
