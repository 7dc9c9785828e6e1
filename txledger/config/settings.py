"""
Configuration Management for txledger

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
Every path and tunable the node reads at startup is declared and
validated in one place.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class LedgerSettings(BaseSettings):
    """
    Ledger node settings.

    Loads configuration from LEDGER_* environment variables and .env file.
    """

    model_config = SettingsConfigDict(
        env_prefix="LEDGER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Locations
    data_dir: Path = Field(
        default=Path("database"),
        description="Directory holding the genesis file and the ledger"
    )
    genesis_file: str = Field(
        default="genesis.json",
        description="Genesis snapshot file name, relative to data_dir"
    )
    ledger_file: str = Field(
        default="tx.db",
        description="Append-only transaction log file name, relative to data_dir"
    )

    # Durability
    fsync: bool = Field(
        default=True,
        description="fsync the ledger file after every appended record"
    )
    persist_retry_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Attempts made by persist_with_retry before giving up"
    )
    persist_retry_max_wait: float = Field(
        default=10.0,
        ge=0.0,
        description="Upper bound in seconds for the wait between persist attempts"
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Log level for the structured audit log"
    )

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Only accept standard logging level names."""
        level = v.strip().upper()
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if level not in allowed:
            raise ValueError(f"Unsupported log level: {v}. Allowed: {sorted(allowed)}")
        return level

    @property
    def genesis_path(self) -> Path:
        """Full path to the genesis snapshot."""
        return self.data_dir / self.genesis_file

    @property
    def ledger_path(self) -> Path:
        """Full path to the transaction log."""
        return self.data_dir / self.ledger_file


@lru_cache()
def get_settings() -> LedgerSettings:
    """
    Get ledger settings (cached).

    Uses LRU cache to ensure settings are only loaded once.
    Call get_settings.cache_clear() to reload if needed.
    """
    return LedgerSettings()
