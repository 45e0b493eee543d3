"""Client for the Safaricom Daraja STK push API."""
import base64
import logging
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

import requests

from mpesa_service.config import Settings
from mpesa_service.errors import AuthFailure, GatewayRejected, Unreachable

logger = logging.getLogger(__name__)

TOKEN_PATH = "/oauth/v1/generate?grant_type=client_credentials"
STK_PUSH_PATH = "/mpesa/stkpush/v1/processrequest"

# Refresh the bearer token this many seconds before the gateway expires it
TOKEN_EXPIRY_MARGIN = 60


@dataclass(frozen=True)
class Submission:
    correlation_id: str
    secondary_provider_id: str


def format_timestamp(moment: datetime) -> str:
    """14-digit ``YYYYMMDDHHMMSS`` in UTC, as the gateway expects."""
    if moment.tzinfo is not None:
        moment = moment.astimezone(timezone.utc)
    return moment.strftime("%Y%m%d%H%M%S")


def build_password(shortcode: str, passkey: str, timestamp: str) -> str:
    return base64.b64encode(f"{shortcode}{passkey}{timestamp}".encode()).decode()


class DarajaClient:
    def __init__(self, settings: Settings, session: Optional[requests.Session] = None):
        self.settings = settings
        self.session = session or requests.Session()
        self._token: Optional[str] = None
        self._token_expires_at = 0.0
        self._token_lock = threading.Lock()

    def access_token(self) -> str:
        with self._token_lock:
            if self._token and time.monotonic() < self._token_expires_at:
                return self._token

            try:
                response = self.session.get(
                    self.settings.mpesa_base_url + TOKEN_PATH,
                    auth=(
                        self.settings.mpesa_consumer_key,
                        self.settings.mpesa_consumer_secret,
                    ),
                    timeout=self.settings.mpesa_timeout_seconds,
                )
            except requests.RequestException as exc:
                raise Unreachable(f"Token request failed: {exc}") from exc

            if response.status_code in (400, 401, 403):
                raise AuthFailure(
                    f"Gateway refused client credentials (HTTP {response.status_code})"
                )
            if response.status_code != 200:
                raise Unreachable(f"Token endpoint returned HTTP {response.status_code}")

            try:
                payload = response.json()
                token = payload["access_token"]
                expires_in = float(payload.get("expires_in", 3599))
            except (ValueError, KeyError, TypeError, AttributeError) as exc:
                raise AuthFailure("Token response was not a usable access token") from exc

            self._token = token
            self._token_expires_at = (
                time.monotonic() + max(expires_in - TOKEN_EXPIRY_MARGIN, 0)
            )
            return token

    def invalidate_token(self):
        with self._token_lock:
            self._token = None
            self._token_expires_at = 0.0

    def build_stk_request(self, amount: int, payer_address: str,
                          order_reference: str, moment: Optional[datetime] = None) -> dict:
        timestamp = format_timestamp(moment or datetime.now(timezone.utc))
        shortcode = self.settings.mpesa_shortcode
        return {
            "BusinessShortCode": shortcode,
            "Password": build_password(shortcode, self.settings.mpesa_passkey, timestamp),
            "Timestamp": timestamp,
            "TransactionType": "CustomerPayBillOnline",
            "Amount": amount,
            "PartyA": payer_address,
            "PartyB": shortcode,
            "PhoneNumber": payer_address,
            "CallBackURL": self.settings.mpesa_callback_url,
            "AccountReference": f"Order-{order_reference}",
            "TransactionDesc": f"Logistics Payment for Order {order_reference}",
        }

    def submit(self, amount: int, payer_address: str, order_reference: str) -> Submission:
        """Send an STK push. Raises a ProviderError subclass on any failure."""
        body = self.build_stk_request(amount, payer_address, order_reference)

        response = self._post_stk(body)
        if response.status_code == 401:
            # Token revoked or expired early; one retry with a fresh token
            self.invalidate_token()
            response = self._post_stk(body)
            if response.status_code == 401:
                raise AuthFailure("Gateway rejected a freshly issued bearer token")

        if response.status_code >= 500:
            raise Unreachable(f"STK push endpoint returned HTTP {response.status_code}")

        try:
            payload = response.json()
        except ValueError:
            payload = None
        if not isinstance(payload, dict):
            raise GatewayRejected(
                str(response.status_code), response.text or "Unparseable gateway response"
            )

        if (response.status_code == 200 and str(payload.get("ResponseCode")) == "0"
                and payload.get("CheckoutRequestID")):
            return Submission(
                correlation_id=payload["CheckoutRequestID"],
                secondary_provider_id=payload.get("MerchantRequestID", ""),
            )

        code = payload.get("ResponseCode", payload.get("errorCode", response.status_code))
        description = payload.get(
            "ResponseDescription", payload.get("errorMessage", "Request rejected")
        )
        logger.warning(
            "STK push for order %s rejected: %s %s", order_reference, code, description
        )
        raise GatewayRejected(str(code), description)

    def _post_stk(self, body: dict) -> requests.Response:
        token = self.access_token()
        try:
            return self.session.post(
                self.settings.mpesa_base_url + STK_PUSH_PATH,
                json=body,
                headers={"Authorization": f"Bearer {token}"},
                timeout=self.settings.mpesa_timeout_seconds,
            )
        except requests.RequestException as exc:
            raise Unreachable(f"STK push request failed: {exc}") from exc
