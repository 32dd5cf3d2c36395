"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
"""

from pydantic import field_validator
from pydantic_settings import BaseSettings
from typing import Optional

from .currency import Currency


class DuesConfig(BaseSettings):
    """Dues collection dashboard configuration"""

    # Collection policy
    default_yearly_amount: str = "40"  # Decimal as string
    recent_window_days: int = 30
    currency: str = "GBP"

    # Record source (PostgREST / Supabase). Empty = in-memory store
    supabase_url: str = ""
    supabase_api_key: str = ""
    fetch_timeout: float = 10.0
    fetch_max_attempts: int = 3

    # API configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8095

    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text
    log_file: Optional[str] = None  # If None, logs to stdout

    @field_validator("currency")
    @classmethod
    def validate_currency(cls, v: str) -> str:
        code = v.strip().upper()
        if code not in Currency.__members__:
            supported = ", ".join(Currency.__members__)
            raise ValueError(f"Unsupported currency '{v}'; expected one of {supported}")
        return code

    class Config:
        env_prefix = "DUES_"
        env_file = ".env"
        case_sensitive = False


# Global configuration instance
config = DuesConfig()


def get_config() -> DuesConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> DuesConfig:
    """Reload configuration from environment"""
    global config
    config = DuesConfig()
    return config
