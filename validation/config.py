"""
Configuration validation for KashflowSync.

Provides a pydantic-settings model read from environment variables (and an
optional .env file) with fail-fast behavior and sensible defaults.
"""

import sys
from functools import lru_cache
from typing import Optional

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from shared.log import create_logger

_, _, log_info, log_warn, _ = create_logger("Config")

_TRUE_VALUES = ('true', '1', 'yes', 'y', 'on')
_FALSE_VALUES = ('false', '0', 'no', 'n', 'off')


class SyncSettings(BaseSettings):
    """
    KashflowSync configuration with validation.

    Required:
        kashflow_username: KashFlow API username
        kashflow_password: KashFlow API password
        kashflow_memorable_word: Memorable word used for the session token handshake

    Optional tunables:
        data_dir: Directory for state.json and the sqlite document store (default: ./data)
        sync_interval_minutes: Scheduler period (default: 60, range: 1-10080)
        full_refresh_hours: Hours between forced full refreshes of incremental entities (default: 24)
        kashflow_max_retries: Retry budget for transient API errors (default: 5, range: 0-20)
    """

    model_config = SettingsConfigDict(
        env_file='.env',
        env_file_encoding='utf-8',
        extra='ignore',
    )

    # Required fields
    kashflow_username: str
    kashflow_password: str
    kashflow_memorable_word: str

    # Upstream API
    kashflow_base_url: str = 'https://api.kashflow.com/v2'
    kashflow_timeout: float = Field(default=30.0, ge=1.0, le=300.0)
    kashflow_max_retries: int = Field(default=5, ge=0, le=20)

    # Storage
    data_dir: str = './data'

    # Logging
    log_level: str = 'info'
    log_json: bool = True

    # Scheduling
    sync_interval_minutes: int = Field(default=60, ge=1, le=10080)
    cron_enabled: bool = True
    run_once: bool = False

    # Sync behaviour flags
    progress_logs: bool = True
    upsert_logs: bool = Field(
        default=False,
        description="Verbose per-document upsert debug logs"
    )
    full_refresh_hours: int = Field(
        default=24,
        ge=1,
        description="Perform a full traversal (no early stop) for incremental entities every N hours"
    )
    incremental_soft_delete: bool = Field(
        default=True,
        description="After a full refresh, soft delete incremental-entity docs not seen in that refresh"
    )
    wrap_total_check: bool = Field(
        default=False,
        description="Require fetched >= API total before a wrap traversal counts as complete"
    )

    # Page sizes
    customers_page_size: int = Field(default=100, ge=1, le=500)
    suppliers_page_size: int = Field(default=250, ge=1, le=500)
    incremental_page_size: int = Field(default=100, ge=1, le=500)

    # Status server
    metrics_enabled: bool = True
    port: int = Field(default=3000, ge=1, le=65535)
    metrics_auth_user: Optional[str] = None
    metrics_auth_pass: Optional[str] = None

    @field_validator('kashflow_username', 'kashflow_password', 'kashflow_memorable_word', mode='after')
    @classmethod
    def validate_required_text(cls, v: str) -> str:
        """Reject empty credentials."""
        if not v or not v.strip():
            raise ValueError('value is required')
        return v

    @field_validator('kashflow_base_url', mode='after')
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        """Validate kashflow_base_url is a valid HTTP/HTTPS URL."""
        if not v.startswith(('http://', 'https://')):
            raise ValueError('kashflow_base_url must start with http:// or https://')
        return v.rstrip('/')  # Normalize: remove trailing slash

    @field_validator('log_level', mode='before')
    @classmethod
    def validate_log_level(cls, v):
        """Validate log_level is a known level name."""
        valid = ('trace', 'debug', 'info', 'warning', 'error')
        if isinstance(v, str) and v.lower() in valid:
            return v.lower()
        raise ValueError(f"log_level must be one of {valid}, got: {v}")

    @field_validator(
        'log_json', 'cron_enabled', 'run_once', 'progress_logs', 'upsert_logs',
        'incremental_soft_delete', 'wrap_total_check', 'metrics_enabled',
        mode='before'
    )
    @classmethod
    def validate_booleans(cls, v):
        """Ensure boolean fields are actual booleans, not arbitrary truthy strings."""
        if isinstance(v, bool):
            return v
        if isinstance(v, str):
            lower = v.strip().lower()
            if lower in _TRUE_VALUES:
                return True
            if lower in _FALSE_VALUES or lower == '':
                return False
            raise ValueError(f"Invalid boolean value: {v}")
        raise ValueError(f"Expected boolean, got {type(v).__name__}")

    @property
    def sync_interval_seconds(self) -> float:
        return self.sync_interval_minutes * 60.0

    @property
    def metrics_auth_enabled(self) -> bool:
        return bool(self.metrics_auth_user and self.metrics_auth_pass)

    def log_config(self) -> None:
        """Log configuration with secrets withheld."""
        log_info(
            f"KashflowSync config: base_url={self.kashflow_base_url}, "
            f"user={self.kashflow_username}, password=****, memorable_word=****, "
            f"data_dir={self.data_dir}, "
            f"interval={self.sync_interval_minutes}m, cron_enabled={self.cron_enabled}, "
            f"run_once={self.run_once}, "
            f"full_refresh_hours={self.full_refresh_hours}, "
            f"incremental_soft_delete={self.incremental_soft_delete}, "
            f"wrap_total_check={self.wrap_total_check}, "
            f"max_retries={self.kashflow_max_retries}, timeout={self.kashflow_timeout}s"
        )
        if self.upsert_logs:
            log_warn("UPSERT LOGS ENABLED: every document write is logged at debug level")
        if self.metrics_enabled:
            auth = "basic auth" if self.metrics_auth_enabled else "no auth"
            log_info(f"Status server enabled on port {self.port} ({auth})")


@lru_cache(maxsize=1)
def get_settings() -> SyncSettings:
    """Return the cached SyncSettings instance.

    Exits with a helpful error message if required settings are missing.
    """
    try:
        return SyncSettings()
    except ValidationError as exc:
        missing: list[str] = []
        for error in exc.errors():
            if error.get("type") == "missing":
                loc = error.get("loc", ())
                if loc:
                    missing.append(str(loc[0]).upper())

        if missing:
            names = ", ".join(missing)
            print(
                f"\nMissing required configuration: {names}\n"
                f"Set these as environment variables or add them to .env\n"
                f"Example:\n"
                f"  export KASHFLOW_USERNAME=you@example.com\n"
                f"  export KASHFLOW_PASSWORD=secret\n"
                f"  export KASHFLOW_MEMORABLE_WORD=word\n",
                file=sys.stderr,
            )
        else:
            print(
                f"\nConfiguration error:\n{exc}\n",
                file=sys.stderr,
            )
        sys.exit(1)


# Re-export ValidationError for external use
__all__ = ['SyncSettings', 'get_settings', 'ValidationError']
