def stk_callback(correlation_id, result_code, result_desc, merchant_request_id="29115-34620561-1"):
    callback = {
        "MerchantRequestID": merchant_request_id,
        "CheckoutRequestID": correlation_id,
        "ResultCode": result_code,
        "ResultDesc": result_desc,
    }
    if result_code == 0:
        callback["CallbackMetadata"] = {
            "Item": [
                {"Name": "Amount", "Value": 500},
                {"Name": "MpesaReceiptNumber", "Value": "NLJ7RT61SV"},
                {"Name": "TransactionDate", "Value": 20260115093512},
                {"Name": "PhoneNumber", "Value": 254708374149},
            ]
        }
    return {"Body": {"stkCallback": callback}}
