from sqlalchemy import Column, String, Integer, DateTime
from mpesa_service.database import Base

PENDING = "pending"
SUCCEEDED = "succeeded"
FAILED = "failed"

TERMINAL_STATUSES = (SUCCEEDED, FAILED)


class PaymentIntent(Base):
    __tablename__ = "payment_intents"

    correlation_id = Column(String, primary_key=True)        # CheckoutRequestID
    order_reference = Column(String, nullable=False, index=True)
    secondary_provider_id = Column(String)                   # MerchantRequestID
    amount = Column(Integer, nullable=False)
    payer_address = Column(String, nullable=False)
    status = Column(String, nullable=False, default=PENDING, index=True)
    result_code = Column(String)
    result_description = Column(String)
    created_at = Column(DateTime, nullable=False)
    finalized_at = Column(DateTime)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def to_dict(self) -> dict:
        return {
            "order_reference": self.order_reference,
            "correlation_id": self.correlation_id,
            "secondary_provider_id": self.secondary_provider_id,
            "amount": self.amount,
            "payer_address": self.payer_address,
            "status": self.status,
            "result_code": self.result_code,
            "result_description": self.result_description,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "finalized_at": self.finalized_at.isoformat() if self.finalized_at else None,
        }
