"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
"""

from pydantic_settings import BaseSettings
from typing import Optional


class LedgerConfig(BaseSettings):
    """Loan ledger configuration"""
    
    # Storage configuration
    database_url: str = "sqlite:///loan_ledger.db"  # or memory:// for an in-process store
    
    # API configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8090
    
    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text
    log_file: Optional[str] = None  # If None, logs to stderr
    
    # Calendar configuration
    timezone: Optional[str] = None  # IANA name, e.g. America/Mexico_City; host local date if None
    
    # Business rules configuration
    default_late_fee_rate: str = "0.05"  # Late fee per overdue month, fraction of principal + interest
    initial_capital: str = "0.00"
    loan_number_prefix: str = "LOAN"
    
    # Feature flags
    enable_capital_tracking: bool = True
    
    class Config:
        env_prefix = "LEDGER_"
        env_file = ".env"
        case_sensitive = False


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
