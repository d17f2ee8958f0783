"""
Pydantic-based configuration models for the party bot.

Every value can be supplied through the environment (or a ``.env`` file);
each section reads its own prefix.
"""

from pathlib import Path
from typing import Any, ClassVar

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

from ..structured_logging.enhanced_logging_config import get_logger

logger = get_logger(__name__)

BOT_VERSION = "v1.0"
DEFAULT_TARGET_CHANNEL_ID = 1448444485410226259
DEFAULT_LOCK_TIMEOUT_SECONDS = 3 * 60 * 60


class DiscordConfig(BaseSettings):
    """Chat platform connection configuration."""

    token: str = Field(default="", description="Bot token (required to connect)")
    target_channel_id: int = Field(
        default=DEFAULT_TARGET_CHANNEL_ID, description="Channel where party formations are posted"
    )
    guild_id: int | None = Field(default=None, description="Guild to sync slash commands to (global when unset)")

    @field_validator("target_channel_id")
    @classmethod
    def validate_channel_id(cls, v: int) -> int:
        """Validate channel id is a positive snowflake."""
        if v <= 0:
            logger.error("Invalid target channel id", target_channel_id=v)
            raise ValueError("Target channel id must be a positive integer")
        return v

    model_config = {
        "env_prefix": "DISCORD_",
        "case_sensitive": False,
        "extra": "ignore",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
    }


class PartyConfig(BaseSettings):
    """Party lifecycle configuration."""

    lock_timeout_seconds: float = Field(
        default=DEFAULT_LOCK_TIMEOUT_SECONDS, description="Seconds after creation before a party auto-locks"
    )
    data_path: Path = Field(default=Path("data/parties.json"), description="Snapshot file for active parties")
    external_name_max_length: int = Field(default=50, description="Maximum length of an external player's IGN")

    @field_validator("lock_timeout_seconds")
    @classmethod
    def validate_lock_timeout(cls, v: float) -> float:
        """Validate timeout is positive."""
        if v <= 0:
            logger.error("Invalid party lock timeout", lock_timeout_seconds=v)
            raise ValueError("Lock timeout must be greater than zero")
        return v

    @field_validator("external_name_max_length")
    @classmethod
    def validate_name_length(cls, v: int) -> int:
        if v < 1:
            raise ValueError("External name length must be at least 1")
        return v

    model_config = {
        "env_prefix": "PARTY_",
        "case_sensitive": False,
        "extra": "ignore",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
    }


class LoggingConfig(BaseSettings):
    """Logging configuration."""

    environment: str = Field(default="", description="Log environment name (auto-detected when empty)")
    level: str = Field(default="INFO", description="Minimum log level")
    log_base: str = Field(default="logs", description="Base directory for log files")
    max_size: str = Field(default="10MB", description="Size at which log files rotate")
    backup_count: int = Field(default=5, description="Rotated log files to keep")
    disable_logging: bool = Field(default=False, description="Skip file handlers entirely")

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        """Validate log level is one the stdlib understands."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        level = v.upper()
        if level not in valid_levels:
            raise ValueError(f"Log level must be one of {valid_levels}")
        return level

    model_config = {
        "env_prefix": "LOGGING_",
        "case_sensitive": False,
        "extra": "ignore",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
    }


class AppConfig(BaseSettings):
    """Top-level application configuration."""

    version: ClassVar[str] = BOT_VERSION
    discord: DiscordConfig = Field(default_factory=DiscordConfig)
    party: PartyConfig = Field(default_factory=PartyConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {"case_sensitive": False, "extra": "ignore"}

    def to_legacy_dict(self) -> dict[str, Any]:
        """Flatten to the dictionary shape the logging setup consumes."""
        return {
            "version": self.version,
            "logging": self.logging.model_dump(),
            "party": {
                "lock_timeout_seconds": self.party.lock_timeout_seconds,
                "data_path": str(self.party.data_path),
            },
            "discord": {
                "target_channel_id": self.discord.target_channel_id,
                "guild_id": self.discord.guild_id,
            },
        }
