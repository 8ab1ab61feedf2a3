"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
"""

from pydantic_settings import BaseSettings
from typing import Optional

# Placeholder signing key; anyone who knows it can mint tokens
DEFAULT_JWT_SECRET = "change-me-in-production"


class ShxdwConfig(BaseSettings):
    """SHXDW bank ledger configuration"""

    # Database configuration
    database_path: str = "shxdw_bank.db"  # "memory://" for a throwaway in-process store

    # API configuration
    api_host: str = "127.0.0.1"
    api_port: int = 8090

    # Security configuration
    jwt_secret: str = DEFAULT_JWT_SECRET
    jwt_expiry_hours: int = 8
    jwt_algorithm: str = "HS256"
    password_min_length: int = 4

    # Well-known first-run administrator, flagged for rotation on creation
    bootstrap_admin_username: str = "admin"
    bootstrap_admin_password: str = "admin"

    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text
    log_file: Optional[str] = None  # If None, logs to stderr

    # Account numbering
    account_number_prefix: str = "SHX"
    account_number_max_attempts: int = 10

    # Live dashboard
    dashboard_refresh_seconds: float = 0.5
    dashboard_top_n: int = 8

    # Feature flags
    enable_audit_logging: bool = True

    @property
    def uses_default_jwt_secret(self) -> bool:
        return self.jwt_secret == DEFAULT_JWT_SECRET

    class Config:
        env_prefix = "SHXDW_"
        env_file = ".env"
        case_sensitive = False


# Global configuration instance
config = ShxdwConfig()


def get_config() -> ShxdwConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> ShxdwConfig:
    """Reload configuration from environment"""
    global config
    config = ShxdwConfig()
    return config
