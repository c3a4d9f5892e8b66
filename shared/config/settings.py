import os
import warnings
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional

from dotenv import load_dotenv


def _flag(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _database_url() -> str:
    explicit = os.getenv("DATABASE_URL")
    if explicit:
        return explicit

    user = os.getenv("POSTGRES_USER", "postgres")
    password = os.getenv("POSTGRES_PASSWORD", "postgres")
    host = os.getenv("POSTGRES_HOST", "localhost")  # In Docker, this will be 'postgres'
    port = os.getenv("POSTGRES_PORT", "5433")
    name = os.getenv("POSTGRES_DB", "marketplace")
    return f"postgresql+asyncpg://{user}:{password}@{host}:{port}/{name}"


def _secret(name: str, insecure_default: str) -> str:
    value = os.getenv(name, "")
    if not value:
        warnings.warn(
            f"{name} is not set. Using an insecure default. Set this env var in production!",
            stacklevel=3,
        )
        value = insecure_default
    return value


@dataclass(frozen=True)
class Settings:
    """Process configuration. Built once at startup and handed to the container."""

    database_url: str = "sqlite+aiosqlite:///./marketplace.db"
    sql_echo: bool = False

    jwt_secret_key: str = "insecure-jwt-secret-change-me"
    internal_api_key: str = "insecure-default-change-me"

    redis_url: Optional[str] = None
    cache_ttl_seconds: int = 300
    tracking_cache_ttl_seconds: int = 600

    notification_url: Optional[str] = None
    notification_timeout_seconds: float = 5.0

    mock_webhook_secret: str = "mock-webhook-secret"
    razorpay_key_id: Optional[str] = None
    razorpay_key_secret: Optional[str] = None
    razorpay_webhook_secret: Optional[str] = None
    razorpay_api_url: str = "https://api.razorpay.com"
    gateway_timeout_seconds: float = 10.0

    currency: str = "INR"
    shipping_fee: Decimal = field(default_factory=lambda: Decimal("180"))

    service_name: str = "marketplace"
    otlp_endpoint: str = "http://localhost:4317"
    tracing_enabled: bool = False
    metrics_enabled: bool = True

    @property
    def razorpay_configured(self) -> bool:
        return bool(self.razorpay_key_id and self.razorpay_key_secret)

    @classmethod
    def from_env(cls) -> "Settings":
        load_dotenv()
        return cls(
            database_url=_database_url(),
            sql_echo=_flag("SQL_ECHO", False),
            jwt_secret_key=_secret("JWT_SECRET_KEY", "insecure-jwt-secret-change-me"),
            internal_api_key=_secret("INTERNAL_API_KEY", "insecure-default-change-me"),
            redis_url=os.getenv("REDIS_URL") or None,
            cache_ttl_seconds=int(os.getenv("CACHE_TTL_SECONDS", "300")),
            tracking_cache_ttl_seconds=int(os.getenv("TRACKING_CACHE_TTL_SECONDS", "600")),
            notification_url=os.getenv("NOTIFICATION_URL") or None,
            notification_timeout_seconds=float(os.getenv("NOTIFICATION_TIMEOUT_SECONDS", "5")),
            mock_webhook_secret=_secret("MOCK_WEBHOOK_SECRET", "mock-webhook-secret"),
            razorpay_key_id=os.getenv("RAZORPAY_KEY_ID") or None,
            razorpay_key_secret=os.getenv("RAZORPAY_KEY_SECRET") or None,
            razorpay_webhook_secret=os.getenv("RAZORPAY_WEBHOOK_SECRET") or None,
            razorpay_api_url=os.getenv("RAZORPAY_API_URL", "https://api.razorpay.com"),
            gateway_timeout_seconds=float(os.getenv("GATEWAY_TIMEOUT_SECONDS", "10")),
            currency=os.getenv("CURRENCY", "INR"),
            shipping_fee=Decimal(os.getenv("SHIPPING_FEE", "180")),
            service_name=os.getenv("SERVICE_NAME", "marketplace"),
            otlp_endpoint=os.getenv("OTLP_ENDPOINT", "http://localhost:4317"),
            tracing_enabled=_flag("TRACING_ENABLED", False),
            metrics_enabled=_flag("METRICS_ENABLED", True),
        )
