import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Body, FastAPI, HTTPException
from pydantic import ValidationError

from mpesa_service.callbacks import parse_callback
from mpesa_service.config import Settings
from mpesa_service.daraja import DarajaClient
from mpesa_service.database import Base, create_db_engine, create_session_factory
from mpesa_service.engine import PaymentEngine
from mpesa_service.notifications import Notifier, QueuedNotifier, WebhookNotifier
from mpesa_service.reconciliation import ReconciliationSweeper
from mpesa_service.routes import router
from mpesa_service.store import IntentStore

logger = logging.getLogger(__name__)

CALLBACK_ACK = {"ResultCode": 0, "ResultDesc": "Accepted"}


def create_app(settings: Optional[Settings] = None,
               provider: Optional[DarajaClient] = None,
               notifier: Optional[Notifier] = None) -> FastAPI:
    settings = settings or Settings.from_env()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    db_engine = create_db_engine(settings.database_url)
    Base.metadata.create_all(bind=db_engine)
    session_factory = create_session_factory(db_engine)

    if notifier is None:
        target = (WebhookNotifier(settings.notify_webhook_url, settings.mpesa_timeout_seconds)
                  if settings.notify_webhook_url else Notifier())
        notifier = QueuedNotifier(target)

    engine = PaymentEngine(
        IntentStore(session_factory),
        provider or DarajaClient(settings),
        notifier,
        pending_timeout_seconds=settings.pending_timeout_seconds,
    )
    sweeper = ReconciliationSweeper(engine, settings.reconciliation_interval_seconds)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if isinstance(notifier, QueuedNotifier):
            notifier.start()
        sweeper.start()
        yield
        sweeper.stop()
        if isinstance(notifier, QueuedNotifier):
            notifier.stop()

    app = FastAPI(title="M-Pesa Payment Microservice", lifespan=lifespan)
    app.state.settings = settings
    app.state.engine = engine
    app.state.sweeper = sweeper
    app.state.session_factory = session_factory

    app.include_router(router)

    @app.post("/mpesa/callback")
    def mpesa_callback(payload: dict = Body(...)):
        try:
            callback = parse_callback(payload)
        except ValidationError:
            raise HTTPException(status_code=400, detail="Invalid payload")

        ack = engine.handle_callback(
            callback.CheckoutRequestID, callback.ResultCode, callback.ResultDesc
        )
        logger.info(
            "Callback %s (receipt %s) acknowledged: %s",
            ack.correlation_id, callback.metadata_value("MpesaReceiptNumber"), ack.outcome,
        )
        return CALLBACK_ACK

    return app


app = create_app()
