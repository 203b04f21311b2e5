import os
from dotenv import load_dotenv
from pydantic import BaseModel

load_dotenv()


def _bool_env(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _database_url() -> str:
    url = os.getenv("DATABASE_URL")
    if url:
        return url

    db_user = os.getenv("POSTGRES_USER", "postgres")
    db_password = os.getenv("POSTGRES_PASSWORD", "postgres")
    db_host = os.getenv("POSTGRES_HOST", "localhost")  # In Docker, this will be 'postgres'
    db_port = os.getenv("POSTGRES_PORT", "5433")
    db_name = os.getenv("POSTGRES_DB", "storefront")
    return f"postgresql+asyncpg://{db_user}:{db_password}@{db_host}:{db_port}/{db_name}"


class Settings(BaseModel):
    """Process-wide configuration, built once and handed to create_app()."""

    service_name: str = "storefront_payments"
    database_url: str
    sql_echo: bool = False

    internal_api_key: str = ""

    mercadopago_api_url: str = "https://api.mercadopago.com"
    mercadopago_access_token: str = ""
    mercadopago_public_key: str = ""
    mercadopago_webhook_secret: str = ""
    mercadopago_timeout: float = 15.0
    mercadopago_notification_url: str | None = None

    otlp_endpoint: str | None = None
    metrics_enabled: bool = True

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            service_name=os.getenv("SERVICE_NAME", "storefront_payments"),
            database_url=_database_url(),
            sql_echo=_bool_env("SQL_ECHO", False),
            internal_api_key=os.getenv("INTERNAL_API_KEY", ""),
            mercadopago_api_url=os.getenv("MERCADOPAGO_API_URL", "https://api.mercadopago.com"),
            mercadopago_access_token=os.getenv("MERCADOPAGO_ACCESS_TOKEN", ""),
            mercadopago_public_key=os.getenv("MERCADOPAGO_PUBLIC_KEY", ""),
            mercadopago_webhook_secret=os.getenv("MERCADOPAGO_WEBHOOK_SECRET", ""),
            mercadopago_timeout=float(os.getenv("MERCADOPAGO_TIMEOUT", "15")),
            mercadopago_notification_url=os.getenv("MERCADOPAGO_NOTIFICATION_URL") or None,
            otlp_endpoint=os.getenv("OTLP_ENDPOINT") or None,
            metrics_enabled=_bool_env("METRICS_ENABLED", True),
        )
