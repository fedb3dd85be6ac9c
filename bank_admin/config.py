"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
"""

from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class BankAdminConfig(BaseSettings):
    """Bank admin back office configuration"""

    model_config = SettingsConfigDict(
        env_prefix="BANK_ADMIN_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # Database configuration
    database_url: str = "sqlite:///bank_admin.db"  # memory:// or postgresql://...

    # API configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8080
    cors_origins: List[str] = ["*"]

    # Security configuration
    auth_enabled: bool = True
    jwt_secret: str = "change-me-in-production-use-a-long-random-value"
    jwt_algorithm: str = "HS256"
    jwt_expiry_hours: int = 24
    password_min_length: int = 8

    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text

    # Data initialization
    seed_admin_users: bool = True
    seed_sample_data: bool = True


# Global configuration instance
config = BankAdminConfig()


def get_config() -> BankAdminConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> BankAdminConfig:
    """Reload configuration from environment"""
    global config
    config = BankAdminConfig()
    return config
