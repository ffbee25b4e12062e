from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings

# .env lives at the project root: millet_pay/core/config.py -> millet_pay/core -> millet_pay -> root
_ROOT = Path(__file__).resolve().parent.parent.parent
_ENV_FILE = _ROOT / ".env"

SANDBOX = "sandbox"
PRODUCTION = "production"


class Settings(BaseSettings):
    database_url: str = "sqlite:///./millet_pay.db"
    environment: str = "development"
    # Comma separated origin list; "*" allows every origin
    cors_origins: str = "*"
    # Per-IP requests per minute on the payment creation endpoints
    rate_limit_per_minute: int = 30
    # Service-role access for admin routes and promo usage updates
    admin_secret: str = ""
    # Optional shared secret for the scheduled cleanup call
    cron_secret: str = ""
    # Customer bearer tokens are issued by the identity provider (HS256)
    jwt_secret: str = ""
    jwt_audience: str = "authenticated"
    # Storefront base; payment result redirects land here
    frontend_url: str = "http://localhost:5173"
    # Public base of this service, used for gateway callback URLs
    public_base_url: str = "http://localhost:8000"

    razorpay_key_id: str = ""
    razorpay_key_secret: str = ""

    phonepe_merchant_id: str = ""
    phonepe_salt_key: str = ""
    phonepe_salt_index: str = "1"
    phonepe_client_id: str = ""
    phonepe_environment: str = PRODUCTION

    cashfree_client_id: str = ""
    cashfree_client_secret: str = ""
    cashfree_environment: str = PRODUCTION
    cashfree_api_version: str = "2023-08-01"

    # Unconfirmed online attempts older than this are cancelled by the sweep
    pending_order_timeout_minutes: int = 5
    gateway_timeout_seconds: float = 30.0

    model_config = {
        "env_file": _ENV_FILE if _ENV_FILE.is_file() else ".env",
        "extra": "ignore",
    }

    @field_validator(
        "admin_secret",
        "cron_secret",
        "jwt_secret",
        "razorpay_key_id",
        "razorpay_key_secret",
        "phonepe_merchant_id",
        "phonepe_salt_key",
        "phonepe_salt_index",
        "phonepe_client_id",
        "cashfree_client_id",
        "cashfree_client_secret",
        mode="before",
    )
    @classmethod
    def strip_secret(cls, v: str | None) -> str:
        """Copy-paste whitespace around keys breaks signatures."""
        return (v or "").strip()

    @field_validator("phonepe_environment", "cashfree_environment", mode="before")
    @classmethod
    def normalize_environment(cls, v: str | None) -> str:
        value = (v or PRODUCTION).strip().lower()
        return SANDBOX if value in ("sandbox", "test", "uat") else PRODUCTION

    @field_validator("frontend_url", "public_base_url", mode="before")
    @classmethod
    def strip_trailing_slash(cls, v: str | None) -> str:
        return (v or "").strip().rstrip("/")

    def cors_origins_list(self) -> list[str]:
        if not self.cors_origins or self.cors_origins.strip() == "*":
            return ["*"]
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    @property
    def razorpay_configured(self) -> bool:
        return bool(self.razorpay_key_id and self.razorpay_key_secret)

    @property
    def phonepe_configured(self) -> bool:
        return bool(self.phonepe_merchant_id and self.phonepe_salt_key)

    @property
    def cashfree_configured(self) -> bool:
        return bool(self.cashfree_client_id and self.cashfree_client_secret)
