from datetime import datetime, timedelta

import pytest

from mpesa_service.errors import AlreadyFinalized, DuplicateKey, IntentNotFound
from mpesa_service.models import PaymentIntent, FAILED, PENDING, SUCCEEDED

CREATED = datetime(2026, 1, 15, 9, 30)


def pending_intent(correlation_id="ws_CO_1", order_reference="ORD-1", created_at=CREATED):
    return PaymentIntent(
        correlation_id=correlation_id,
        order_reference=order_reference,
        secondary_provider_id="m-1",
        amount=500,
        payer_address="254708374149",
        status=PENDING,
        created_at=created_at,
    )


def test_create_and_find(store):
    store.create(pending_intent())

    intent = store.find_by_correlation_id("ws_CO_1")
    assert intent.order_reference == "ORD-1"
    assert not intent.is_terminal


def test_create_duplicate_correlation_id(store):
    store.create(pending_intent())

    with pytest.raises(DuplicateKey):
        store.create(pending_intent(order_reference="ORD-2"))


def test_find_missing(store):
    with pytest.raises(IntentNotFound):
        store.find_by_correlation_id("ws_CO_missing")
    with pytest.raises(IntentNotFound):
        store.find_by_order_reference("ORD-missing")


def test_conditional_update_only_from_pending(store):
    store.create(pending_intent())
    finalized_at = CREATED + timedelta(seconds=40)

    intent = store.apply_terminal_update("ws_CO_1", SUCCEEDED, "0", "Success", finalized_at)
    assert intent.status == SUCCEEDED
    assert intent.finalized_at == finalized_at

    with pytest.raises(AlreadyFinalized):
        store.apply_terminal_update("ws_CO_1", FAILED, "1", "Insufficient funds", finalized_at)

    intent = store.find_by_correlation_id("ws_CO_1")
    assert (intent.status, intent.result_code, intent.result_description) == (
        SUCCEEDED, "0", "Success"
    )


def test_update_unknown_correlation_id(store):
    with pytest.raises(IntentNotFound):
        store.apply_terminal_update("ws_CO_missing", FAILED, "1", "x", CREATED)


def test_update_rejects_pending_target(store):
    store.create(pending_intent())

    with pytest.raises(ValueError):
        store.apply_terminal_update("ws_CO_1", PENDING, None, None, CREATED)


def test_find_stale_pending(store):
    store.create(pending_intent("ws_CO_1", "ORD-1", CREATED))
    store.create(pending_intent("ws_CO_2", "ORD-2", CREATED + timedelta(minutes=10)))
    store.create(pending_intent("ws_CO_3", "ORD-3", CREATED - timedelta(minutes=10)))
    store.apply_terminal_update("ws_CO_3", SUCCEEDED, "0", "Success", CREATED)

    stale = store.find_stale_pending(CREATED + timedelta(minutes=5))

    assert stale == ["ws_CO_1"]
