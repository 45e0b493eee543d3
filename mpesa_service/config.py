import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

BASE_DIR = Path(__file__).resolve().parent.parent
ENV_PATH = BASE_DIR / ".env"

SANDBOX_BASE_URL = "https://sandbox.safaricom.co.ke"


@dataclass(frozen=True)
class Settings:
    """Process-wide configuration, read once at startup."""

    database_url: str
    jwt_secret: str = ""
    mpesa_base_url: str = SANDBOX_BASE_URL
    mpesa_consumer_key: str = ""
    mpesa_consumer_secret: str = ""
    mpesa_shortcode: str = ""
    mpesa_passkey: str = ""
    mpesa_callback_url: str = ""
    mpesa_timeout_seconds: float = 10.0
    reconciliation_interval_seconds: float = 60.0
    pending_timeout_seconds: float = 300.0
    notify_webhook_url: Optional[str] = None
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        # Force-load .env (Windows-safe, reload-safe)
        load_dotenv(dotenv_path=ENV_PATH)

        database_url = os.getenv("DATABASE_URL")
        if not database_url:
            raise RuntimeError("DATABASE_URL is not set. Check your .env file.")

        return cls(
            database_url=database_url,
            jwt_secret=os.getenv("JWT_SECRET", ""),
            mpesa_base_url=os.getenv("MPESA_BASE_URL", SANDBOX_BASE_URL).rstrip("/"),
            mpesa_consumer_key=os.getenv("MPESA_CONSUMER_KEY", ""),
            mpesa_consumer_secret=os.getenv("MPESA_CONSUMER_SECRET", ""),
            mpesa_shortcode=os.getenv("MPESA_SHORTCODE", ""),
            mpesa_passkey=os.getenv("MPESA_PASSKEY", ""),
            mpesa_callback_url=os.getenv("MPESA_CALLBACK_URL", ""),
            mpesa_timeout_seconds=float(os.getenv("MPESA_TIMEOUT_SECONDS", "10")),
            reconciliation_interval_seconds=float(
                os.getenv("RECONCILIATION_INTERVAL_SECONDS", "60")
            ),
            pending_timeout_seconds=float(os.getenv("PENDING_TIMEOUT_SECONDS", "300")),
            notify_webhook_url=os.getenv("NOTIFY_WEBHOOK_URL") or None,
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )
