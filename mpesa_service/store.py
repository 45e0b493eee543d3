from datetime import datetime
from typing import List

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

from mpesa_service.errors import AlreadyFinalized, DuplicateKey, IntentNotFound
from mpesa_service.models import PaymentIntent, PENDING, TERMINAL_STATUSES


class IntentStore:
    """Durable storage for payment intents.

    Every mutation after creation goes through ``apply_terminal_update``, a
    single conditional UPDATE guarded on ``status = 'pending'``. Of any number
    of concurrent finalization attempts for one correlation id, exactly one
    matches a row; the rest see ``AlreadyFinalized``.
    """

    def __init__(self, session_factory):
        self._session_factory = session_factory

    def create(self, intent: PaymentIntent) -> PaymentIntent:
        db = self._session_factory()
        try:
            db.add(intent)
            db.commit()
        except IntegrityError as exc:
            db.rollback()
            raise DuplicateKey(
                f"Intent with correlation id {intent.correlation_id!r} already exists"
            ) from exc
        finally:
            db.close()
        return intent

    def find_by_correlation_id(self, correlation_id: str) -> PaymentIntent:
        db = self._session_factory()
        try:
            intent = db.get(PaymentIntent, correlation_id)
        finally:
            db.close()
        if intent is None:
            raise IntentNotFound(correlation_id)
        return intent

    def find_by_order_reference(self, order_reference: str) -> PaymentIntent:
        """Latest intent created for the order."""
        db = self._session_factory()
        try:
            intent = db.execute(
                select(PaymentIntent)
                .filter_by(order_reference=order_reference)
                .order_by(PaymentIntent.created_at.desc())
                .limit(1)
            ).scalar_one_or_none()
        finally:
            db.close()
        if intent is None:
            raise IntentNotFound(order_reference)
        return intent

    def apply_terminal_update(
        self,
        correlation_id: str,
        status: str,
        result_code: str,
        result_description: str,
        finalized_at: datetime,
    ) -> PaymentIntent:
        if status not in TERMINAL_STATUSES:
            raise ValueError(f"{status!r} is not a terminal status")

        db = self._session_factory()
        try:
            updated = db.execute(
                update(PaymentIntent)
                .where(
                    PaymentIntent.correlation_id == correlation_id,
                    PaymentIntent.status == PENDING,
                )
                .values(
                    status=status,
                    result_code=result_code,
                    result_description=result_description,
                    finalized_at=finalized_at,
                )
            ).rowcount
            db.commit()
            intent = db.get(PaymentIntent, correlation_id)
        finally:
            db.close()

        if intent is None:
            raise IntentNotFound(correlation_id)
        if updated != 1:
            raise AlreadyFinalized(
                f"Intent {correlation_id!r} is already {intent.status}"
            )
        return intent

    def find_stale_pending(self, cutoff: datetime) -> List[str]:
        db = self._session_factory()
        try:
            rows = db.execute(
                select(PaymentIntent.correlation_id)
                .where(
                    PaymentIntent.status == PENDING,
                    PaymentIntent.created_at < cutoff,
                )
                .order_by(PaymentIntent.created_at)
            ).scalars().all()
        finally:
            db.close()
        return list(rows)
