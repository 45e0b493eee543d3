"""Error taxonomy shared by the provider client, store and engine."""


class PaymentError(Exception):
    pass


class InvalidRequest(PaymentError):
    """Caller input failed validation. Nothing was submitted or stored."""


class ProviderError(PaymentError):
    pass


class AuthFailure(ProviderError):
    """The gateway refused our client credentials or bearer token."""


class GatewayRejected(ProviderError):
    def __init__(self, code, description):
        self.code = code
        self.description = description
        super().__init__(f"Gateway rejected request ({code}): {description}")


class Unreachable(ProviderError):
    """Network failure or timeout talking to the gateway."""


class SubmissionFailed(PaymentError):
    def __init__(self, cause: ProviderError):
        self.cause = cause
        super().__init__(f"Payment was not started: {cause}")


class DuplicateKey(PaymentError):
    pass


class AlreadyFinalized(PaymentError):
    pass


class IntentNotFound(PaymentError):
    pass
