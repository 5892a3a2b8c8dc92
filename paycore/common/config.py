"""Central environment-driven settings for the payments service.

The process loads this once at startup. Behavior is controlled by environment
variables (see `.env.example`).
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class CommonSettings(BaseSettings):
    """Typed view of runtime configuration from environment variables."""

    service_name: str = "payments"
    log_level: str = "INFO"
    database_url: str = "sqlite+pysqlite:///./payments.db"
    auto_create_schema: bool = True
    tracing_enabled: bool = False
    otel_exporter_otlp_endpoint: str = "http://otel-collector:4318/v1/traces"
    default_page_size: int = 20
    max_page_size: int = 100
    settlement_failure_rate: float = 0.0
    serialize_payment_writes: bool = False
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


settings = CommonSettings()
