"""Wedlock — Application configuration via environment variables."""

from __future__ import annotations

from pydantic_settings import BaseSettings


class WedlockSettings(BaseSettings):
    """Central configuration loaded from environment / .env file."""

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    # ── Protocol ───────────────────────────────────────────────
    arbiters: list[str] = []
    day_length_seconds: int = 86400
    strict_date_changes: bool = False

    # ── Event Journal ──────────────────────────────────────────
    journal_enabled: bool = True
    journal_database_url: str = "sqlite:///wedlock_journal.db"

    # ── Certificate Registry ───────────────────────────────────
    certificate_registry_url: str = ""
    certificate_registry_timeout: float = 10.0

    # ── HTTP API ───────────────────────────────────────────────
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    # ── Logging ────────────────────────────────────────────────
    log_level: str = "INFO"
    log_format: str = "json"


settings = WedlockSettings()
