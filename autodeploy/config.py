"""Application configuration using pydantic-settings."""

from functools import lru_cache
from typing import Literal

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load .env file and override existing env vars
load_dotenv(override=True)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_env: Literal["development", "staging", "production"] = "development"
    app_debug: bool = True

    # API Server
    api_host: str = "0.0.0.0"
    api_port: int = 8765

    # Persistence (in-memory store when unset)
    database_path: str | None = None

    # Health checks
    health_check_timeout_ms: int = 10_000
    health_endpoints: list[str] = Field(default_factory=lambda: ["/health", "/api/health"])
    service_wait_attempts: int = 30
    service_wait_delay_ms: int = 2_000
    max_response_time_ms: int = 2_000

    # Post-deployment monitoring
    monitoring_duration_ms: int = 300_000
    rollback_threshold: int = 5
    # Percent; when set, a finished window above this error rate fails
    max_error_rate: float | None = None
    circuit_breaker_threshold: int = 3
    monitoring_success_rate: float = 90.0

    # Pipeline commands
    command_timeout_ms: int = 300_000
    rollback_timeout_ms: int = 180_000
    staging_deploy_command: str = "npm run deploy:staging"
    production_deploy_command: str = "npm run deploy:production"
    backup_command: str = "npm run backup -- --name={backup_name}"
    rollback_command: str = "npm run rollback -- --backup={backup_name}"

    # Process supervisor
    supervisor_target: str = "autodeploy/main.py"
    supervisor_python: str | None = None  # defaults to the running interpreter
    supervisor_max_restarts: int = 5
    supervisor_restart_delay: float = 5.0
    supervisor_grace_period: float = 10.0
    supervisor_min_uptime: float = 10.0
    supervisor_pid_file: str = ".autodeploy.pid"
    supervisor_log_file: str = "logs/service.log"

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: Literal["console", "json"] = "console"
    log_directory: str = "logs"
    log_file_name: str = "autodeploy.log"

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.app_env == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.app_env == "production"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()
