from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    environment: str = "dev"
    api_base_url: str = "http://localhost:3000/api"
    request_timeout_seconds: float = 10.0
    application_info_ttl_seconds: float = 30.0
    storage_path: str | None = None
    eligibility_fail_open: bool = True
    eligibility_max_concurrency: int = 4
    session_token: str | None = None
    session_user_id: int | None = None
    session_role: str = "coach"
    badge_poll_interval_seconds: float = 15.0
    max_backoff_seconds: float = 120.0
    otel_enabled: bool = True
    otel_service_name: str = "proph-client"
    otel_exporter_otlp_endpoint: str | None = None
    otel_exporter_otlp_headers: str | None = None
    otel_trace_sample_ratio: float = 1.0
    otel_log_correlation: bool = True

    model_config = SettingsConfigDict(env_prefix="PROPH_", extra="ignore")


@lru_cache
def get_settings() -> Settings:
    return Settings()
