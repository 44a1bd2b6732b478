"""Application configuration via environment variables."""

from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: str = "sqlite+aiosqlite:///./mobile_money.db"
    log_level: str = "INFO"

    # Gateway client
    payments_api_url: str = "http://localhost:8000/api"
    payments_api_key: str = ""
    http_timeout_seconds: float = 20.0

    # Payment sessions
    poll_interval_ms: int = 2000
    poll_timeout_seconds: Optional[float] = None  # None = poll until a terminal status
    success_display_delay_ms: int = 1500

    # Reference backend
    simulate_payments: bool = True  # sandbox mode until provider credentials exist
    mock_latency_ms: int = 0  # Simulated gateway latency

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


settings = Settings()
