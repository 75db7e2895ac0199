"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional

from .currency import decimal_from_string
from .inventory import BookingMethod
from .options import LedgerOptions


class LedgerConfig(BaseSettings):
    """Ledger engine and reporting service configuration"""

    model_config = SettingsConfigDict(
        env_prefix="LEDGER_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # Processing defaults, overridable per ledger through option directives
    default_tolerance: str = "0.005"
    default_booking_method: str = "FIFO"

    # Directive document (JSON) loaded when the service starts
    directives_file: Optional[str] = None

    # API configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8080
    read_only: bool = False
    cors_origins: str = "*"  # Comma separated

    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text
    log_file: Optional[str] = None  # If None, logs to stderr

    def to_ledger_options(self) -> LedgerOptions:
        """
        Processing defaults for new ledgers

        Raises:
            ValueError: If the tolerance or booking method is invalid
        """
        options = LedgerOptions()
        options.tolerances.set('*', decimal_from_string(self.default_tolerance))

        method = BookingMethod.from_name(self.default_booking_method)
        if method is None:
            raise ValueError(f"Invalid booking method: {self.default_booking_method}")
        options.booking_method = method
        return options

    def cors_origin_list(self):
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]


# Global configuration instance
config = LedgerConfig()


def get_config() -> LedgerConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> LedgerConfig:
    """Reload configuration from environment"""
    global config
    config = LedgerConfig()
    return config
