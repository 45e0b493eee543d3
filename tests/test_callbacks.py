import pytest
from pydantic import ValidationError

from helpers import stk_callback
from mpesa_service.callbacks import parse_callback


def test_parse_successful_callback():
    callback = parse_callback(stk_callback("ws_CO_1", 0, "The service request is processed successfully."))

    assert callback.CheckoutRequestID == "ws_CO_1"
    assert callback.MerchantRequestID == "29115-34620561-1"
    assert callback.ResultCode == 0
    assert callback.metadata_value("MpesaReceiptNumber") == "NLJ7RT61SV"
    assert callback.metadata_value("Balance") is None


def test_parse_failed_callback_without_metadata():
    callback = parse_callback(stk_callback("ws_CO_2", 1032, "Request cancelled by user"))

    assert callback.ResultCode == 1032
    assert callback.ResultDesc == "Request cancelled by user"
    assert callback.CallbackMetadata is None
    assert callback.metadata_value("MpesaReceiptNumber") is None


def test_numeric_string_result_code_is_coerced():
    payload = stk_callback("ws_CO_3", 0, "Success")
    payload["Body"]["stkCallback"]["ResultCode"] = "0"

    assert parse_callback(payload).ResultCode == 0


@pytest.mark.parametrize("payload", [
    {},
    {"Body": {}},
    {"Body": {"stkCallback": {"ResultCode": 0, "ResultDesc": "Success"}}},
    {"Body": {"stkCallback": {"CheckoutRequestID": "ws_CO_1", "ResultDesc": "Success"}}},
    {"Body": {"stkCallback": {"CheckoutRequestID": "ws_CO_1", "ResultCode": "zero"}}},
])
def test_malformed_envelopes_raise(payload):
    with pytest.raises(ValidationError):
        parse_callback(payload)
