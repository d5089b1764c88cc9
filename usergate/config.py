"""
Application configuration.

Loads settings from environment variables with sensible defaults.
"""

from __future__ import annotations

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict

from usergate.storage.base import DatabaseConfig


class Settings(BaseSettings):
    """Application settings loaded from environment."""
    
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")
    
    # ==========================================================================
    # Environment
    # ==========================================================================
    
    environment: str = "development"
    debug: bool = True
    app_name: str = "Usergate"
    
    # ==========================================================================
    # API Server
    # ==========================================================================
    
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    cors_origins: str = "http://localhost:3000"
    
    # ==========================================================================
    # Database
    # ==========================================================================
    
    database_type: str = "sqlite"
    database_host: str = "localhost"
    database_port: int = 5432
    database_name: str = "usergate"
    database_user: str = "usergate"
    database_password: str = ""
    database_schema: str | None = None
    database_ssl: bool = False
    database_max_connections: int = 10
    database_idle_timeout_seconds: float = 30.0
    database_connect_timeout_seconds: float = 2.0
    
    # Only used when database_type == "sqlite"
    sqlite_path: str = "./data/usergate.db"
    
    # ==========================================================================
    # Authentication
    # ==========================================================================
    
    session_cookie_name: str = "app_session"
    session_lifetime_days: int = 7
    session_sweep_interval_seconds: int = 3600
    
    password_hash_iterations: int = 100_000
    
    token_rate_limit: int = 100
    token_rate_window_seconds: float = 60.0
    rate_limit_prune_interval_seconds: float = 300.0
    
    # Protected group
    admin_group_name: str = "Admins"
    admin_group_description: str = "System administrators with full access"
    admin_permission_key: str = "admin.manage"
    
    # Optional YAML file that extends the built-in permission registry
    permissions_file: str | None = None
    
    # ==========================================================================
    # Logging
    # ==========================================================================
    
    log_level: str = "INFO"
    log_dir: str = "./logs"
    log_retention_days: int = 14
    
    # ==========================================================================
    # Optional Services
    # ==========================================================================
    
    sentry_dsn: str = ""
    
    # ==========================================================================
    # Helpers
    # ==========================================================================
    
    @property
    def cors_origins_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]
    
    @property
    def is_production(self) -> bool:
        return self.environment == "production"
    
    def database_config(self) -> DatabaseConfig:
        """Build the connector configuration for the configured backend."""
        if self.database_type == "sqlite":
            return DatabaseConfig(type="sqlite", database=self.sqlite_path)
        
        return DatabaseConfig(
            type=self.database_type,
            host=self.database_host,
            port=self.database_port,
            database=self.database_name,
            user=self.database_user,
            password=self.database_password,
            schema_name=self.database_schema,
            ssl=self.database_ssl,
            max_connections=self.database_max_connections,
            idle_timeout_seconds=self.database_idle_timeout_seconds,
            connect_timeout_seconds=self.database_connect_timeout_seconds,
        )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
