from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, StrictInt

from mpesa_service.auth import verify_token
from mpesa_service.engine import PaymentEngine
from mpesa_service.errors import (
    AuthFailure,
    DuplicateKey,
    GatewayRejected,
    IntentNotFound,
    InvalidRequest,
    SubmissionFailed,
)

router = APIRouter()


class PaymentRequest(BaseModel):
    order_reference: str
    amount: StrictInt
    payer_address: str


def get_engine(request: Request) -> PaymentEngine:
    return request.app.state.engine


@router.post("/payments", status_code=201)
def create_payment_api(
    request: PaymentRequest,
    engine: PaymentEngine = Depends(get_engine),
    auth=Depends(verify_token)
):
    try:
        intent = engine.initiate(request.amount, request.payer_address, request.order_reference)
    except InvalidRequest as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except SubmissionFailed as exc:
        detail = {"error": "submission_failed", "message": str(exc.cause)}
        if isinstance(exc.cause, GatewayRejected):
            detail["provider_code"] = exc.cause.code
            detail["provider_description"] = exc.cause.description
        elif isinstance(exc.cause, AuthFailure):
            detail["error"] = "provider_auth_failed"
        raise HTTPException(status_code=502, detail=detail)
    except DuplicateKey:
        raise HTTPException(status_code=500, detail="Payment could not be recorded")

    return intent.to_dict()


@router.get("/payments/{order_reference}")
def payment_status(
    order_reference: str,
    engine: PaymentEngine = Depends(get_engine),
    auth=Depends(verify_token)
):
    try:
        intent = engine.query_status(order_reference)
    except IntentNotFound:
        raise HTTPException(status_code=404, detail="No payment for this order")
    return intent.to_dict()


@router.post("/reconciliation/sweep")
def run_sweep(engine: PaymentEngine = Depends(get_engine), auth=Depends(verify_token)):
    report = engine.sweep_expired()
    return {"expired": report.expired, "skipped": report.skipped}
