"""Application configuration via environment variables.

Uses pydantic-settings to load config from env vars with QOTD_ prefix.
A JSON config document can be layered on top with Settings.from_json_file();
it accepts dotted keys such as "http.port".
"""

import json
from pathlib import Path
from typing import Any, Optional

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings

DEFAULT_SEED_SCRIPT = str(Path(__file__).parent / "db" / "sql" / "seed.sql")


class Settings(BaseSettings):
    """All app configuration. Set via QOTD_* env vars."""

    # Database
    database_url: str = "sqlite+aiosqlite:///./qotd.db"
    seed_script: Optional[str] = DEFAULT_SEED_SCRIPT

    # Server
    environment: str = "development"
    debug: bool = False
    host: str = "0.0.0.0"
    http_port: int = 8080

    # Realtime
    realtime_queue_size: int = Field(100, ge=1)  # buffered events per subscriber

    # Logging
    log_level: str = "INFO"
    log_format: str = "console"  # "json" in production

    # CORS
    cors_origins: list[str] = [
        "http://localhost:5173",
        "http://localhost:3000",
    ]

    model_config = {"env_prefix": "QOTD_"}

    @field_validator("seed_script", mode="before")
    @classmethod
    def blank_seed_disables_import(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, value: str) -> str:
        if value not in ("console", "json"):
            raise ValueError("log_format must be 'console' or 'json'")
        return value

    @model_validator(mode="after")
    def validate_production_settings(self):
        """Reject throwaway storage outside development."""
        if self.environment != "development" and ":memory:" in self.database_url:
            raise ValueError(
                "QOTD_DATABASE_URL must point at a persistent database in "
                "non-development environments."
            )
        return self

    @classmethod
    def from_json_file(cls, path: str | Path, **overrides: Any) -> "Settings":
        """Load settings from a JSON document.

        Keys may be written either as field names ("http_port") or in the
        dotted form ("http.port"). Explicit overrides win over the file.
        """
        raw = json.loads(Path(path).read_text(encoding="utf-8"))
        if not isinstance(raw, dict):
            raise ValueError(f"config file {path} must contain a JSON object")
        values = {key.replace(".", "_").replace("-", "_"): v for key, v in raw.items()}
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)
