import os

# mpesa_service.main builds a module-level app from the environment on import
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("RECONCILIATION_INTERVAL_SECONDS", "0")

from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient
from jose import jwt

from mpesa_service.config import Settings
from mpesa_service.daraja import DarajaClient, Submission
from mpesa_service.database import Base, create_db_engine, create_session_factory
from mpesa_service.engine import PaymentEngine
from mpesa_service.main import create_app
from mpesa_service.notifications import Notifier
from mpesa_service.store import IntentStore

JWT_SECRET = "test-secret"


class FakeClock:
    def __init__(self, now=datetime(2026, 1, 15, 9, 30, 0)):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def settings(tmp_path):
    return Settings(
        database_url=f"sqlite:///{tmp_path / 'payments.db'}",
        jwt_secret=JWT_SECRET,
        mpesa_base_url="https://sandbox.safaricom.co.ke",
        mpesa_consumer_key="consumer-key",
        mpesa_consumer_secret="consumer-secret",
        mpesa_shortcode="174379",
        mpesa_passkey="test-passkey",
        mpesa_callback_url="https://payments.example.com/mpesa/callback",
        reconciliation_interval_seconds=0,
        pending_timeout_seconds=300,
    )


@pytest.fixture
def session_factory(settings):
    db_engine = create_db_engine(settings.database_url)
    Base.metadata.create_all(bind=db_engine)
    yield create_session_factory(db_engine)
    Base.metadata.drop_all(bind=db_engine)
    db_engine.dispose()


@pytest.fixture
def store(session_factory):
    return IntentStore(session_factory)


@pytest.fixture
def provider(mocker):
    provider = mocker.Mock(spec=DarajaClient)
    provider.submit.return_value = Submission(
        correlation_id="ws_CO_1", secondary_provider_id="29115-34620561-1"
    )
    return provider


@pytest.fixture
def notifier(mocker):
    return mocker.Mock(spec=Notifier)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def engine(store, provider, notifier, clock):
    return PaymentEngine(store, provider, notifier, pending_timeout_seconds=300, clock=clock)


@pytest.fixture
def auth_headers():
    token = jwt.encode({"sub": "orders-service"}, JWT_SECRET, algorithm="HS256")
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def client(settings, provider, notifier):
    fastapi_app = create_app(settings, provider=provider, notifier=notifier)
    with TestClient(fastapi_app) as c:
        yield c
    fastapi_app.state.session_factory.kw["bind"].dispose()
