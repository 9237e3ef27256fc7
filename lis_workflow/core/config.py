"""
Configuration management for the LIS workflow core
"""

from typing import List
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from pathlib import Path


class Settings(BaseSettings):
    """Main configuration class combining all settings"""
    
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )
    
    # Application settings
    app_name: str = "Laboratory Information System - Workflow Core"
    app_version: str = "1.0.0"
    environment: str = "development"
    debug: bool = True
    
    # Database configuration
    database_url: str = "sqlite:///./lis_workflow.db"
    database_pool_size: int = 5
    database_max_overflow: int = 10
    database_pool_timeout: int = 30
    database_echo: bool = False
    
    # Logging configuration
    log_level: str = "INFO"
    log_file: str = "logs/lis_workflow.log"
    log_max_size: int = 10485760
    log_backup_count: int = 5
    log_format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    
    # API configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8080
    api_cors_origins: List[str] = ["*"]
    api_cors_methods: List[str] = ["*"]
    api_cors_headers: List[str] = ["*"]
    
    # Workflow rules
    workflow_require_version_token: bool = False
    workflow_barcode_prefix: str = "SMP"
    workflow_rework_incidence_types: List[str] = [
        "rework",
        "retrabajo",
        "correction",
        "correccion",
        "corrección",
    ]
    workflow_complete_sample_on_validation_queue: bool = True
    
    # Background reconciliation
    reconciliation_enabled: bool = True
    reconciliation_interval_seconds: int = 3600
    
    @field_validator('environment')
    @classmethod
    def validate_environment(cls, v):
        if v not in ['development', 'testing', 'production']:
            raise ValueError('Environment must be development, testing, or production')
        return v
    
    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v):
        level = v.upper()
        if level not in ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']:
            raise ValueError('Invalid log level')
        return level
    
    @field_validator('workflow_rework_incidence_types')
    @classmethod
    def normalize_incidence_types(cls, v):
        return [item.strip().lower() for item in v if item and item.strip()]
    
    @property
    def is_production(self) -> bool:
        return self.environment == "production"
    
    @property
    def is_development(self) -> bool:
        return self.environment == "development"
    
    def create_log_directory(self):
        """Create log directory if it doesn't exist"""
        log_dir = Path(self.log_file).parent
        log_dir.mkdir(parents=True, exist_ok=True)


# Global settings instance
settings = Settings()
