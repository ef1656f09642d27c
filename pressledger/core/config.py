from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=None, extra="ignore")

    app_env: str = "dev"
    database_url: str = "postgresql+asyncpg://pressledger:pressledger@db:5432/pressledger"
    log_level: str = "INFO"

    # Paper is bought in reams; 500 sheets unless the material says otherwise.
    default_sheets_per_unit: int = 500

    # Per-material write serialization.
    #
    # A waiter gives up after lock_timeout_ms and surfaces BusyError; BusyError and
    # ConflictError are retried up to conflict_retry_attempts times before reaching the caller.
    lock_timeout_ms: int = 3000
    conflict_retry_attempts: int = 3

    # Re-check opening stock + movements == current stock on every adjustment.
    verify_reconciliation_on_write: bool = True

    min_edit_reason_length: int = 5

    sse_poll_interval_sec: float = 15.0


settings = Settings()
