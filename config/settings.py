"""
Configuration management for the GitHub → Rally push sync service.

This module provides centralized configuration with:
- Environment-specific settings
- Type validation and defaults
- Secret handling for tracker tokens and webhook secrets
- Sync worker pool limits
"""

from typing import Optional, List, Dict, Any
from functools import lru_cache

from pydantic import Field, field_validator, SecretStr
from pydantic_settings import BaseSettings
from pydantic_settings import BaseSettings as PydanticBaseSettings


class RallySettings(BaseSettings):
    """Rally (tracker) connection settings."""

    url: str = Field(default="https://rally1.rallydev.com", description="Rally base URL")
    api_token: Optional[SecretStr] = Field(
        default=None, description="Rally API key sent as the ZSESSIONID header"
    )
    workspace: str = Field(default="", description="Rally workspace name")
    request_timeout: float = Field(default=30.0, gt=0, description="HTTP request timeout")

    @field_validator("url")
    @classmethod
    def validate_rally_url(cls, v):
        if not v.startswith(("http://", "https://")):
            raise ValueError("Rally URL must be HTTP/HTTPS")
        return v.rstrip("/")


class GitHubSettings(BaseSettings):
    """GitHub webhook settings."""

    webhook_secret: Optional[SecretStr] = Field(
        default=None, description="GitHub webhook secret for signature verification"
    )
    signature_required: bool = Field(
        default=False, description="Reject pushes that carry no signature"
    )


class RedisSettings(BaseSettings):
    """Redis configuration for sync event publication."""

    url: str = Field(default="redis://localhost:6379", description="Redis connection URL")
    events_enabled: bool = Field(default=False, description="Publish sync events to Redis")
    channel: str = Field(default="push_sync_events", description="Pub/sub channel name")
    socket_connect_timeout: int = Field(default=5, description="Socket connect timeout")
    socket_timeout: int = Field(default=5, description="Socket timeout")
    retry_on_timeout: bool = Field(default=True, description="Retry on timeout")

    @field_validator("url")
    @classmethod
    def validate_redis_url(cls, v):
        if not v.startswith(("redis://", "rediss://", "unix://")):
            raise ValueError("Redis URL must use redis://, rediss:// or unix://")
        return v


class MonitoringSettings(BaseSettings):
    """Monitoring and observability configuration settings."""

    log_level: str = Field(default="INFO", description="Logging level")
    enable_metrics: bool = Field(default=True, description="Expose the /metrics endpoint")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v):
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Log level must be one of: {valid_levels}")
        return v.upper()


class ServiceSettings(BaseSettings):
    """HTTP service settings."""

    host: str = Field(default="0.0.0.0", description="Bind address")
    port: int = Field(default=8080, ge=1, le=65535, description="Service port")
    graceful_shutdown_timeout: int = Field(default=30, description="Graceful shutdown timeout")
    cors_origins: List[str] = Field(default=["*"], description="CORS allowed origins")


class SyncSettings(BaseSettings):
    """Detached push processing settings."""

    max_concurrent_pushes: int = Field(
        default=8, ge=1, description="Pushes processed at the same time"
    )
    push_timeout_seconds: Optional[float] = Field(
        default=None, gt=0, description="Per-push processing timeout (unbounded when unset)"
    )


class Settings(PydanticBaseSettings):
    """
    Main application settings with environment-specific configuration.

    Supports multiple environments:
    - development: Local development settings
    - testing: Test environment settings
    - staging: Staging environment settings
    - production: Production environment settings
    """

    app_name: str = Field(default="github-rally-sync", description="Application name")
    version: str = Field(default="1.0.0", description="Application version")
    environment: str = Field(default="development", description="Environment name")
    debug: bool = Field(default=False, description="Enable debug mode")

    rally: RallySettings = Field(default_factory=RallySettings)
    github: GitHubSettings = Field(default_factory=GitHubSettings)
    redis: RedisSettings = Field(default_factory=RedisSettings)
    monitoring: MonitoringSettings = Field(default_factory=MonitoringSettings)
    service: ServiceSettings = Field(default_factory=ServiceSettings)
    sync: SyncSettings = Field(default_factory=SyncSettings)

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v):
        valid_environments = ["development", "testing", "staging", "production"]
        if v not in valid_environments:
            raise ValueError(f"Environment must be one of: {valid_environments}")
        return v

    @field_validator("debug")
    @classmethod
    def validate_debug_mode(cls, v, info):
        if info.data.get("environment") == "production" and v:
            raise ValueError("Debug mode cannot be enabled in production")
        return v

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "env_nested_delimiter": "__",
        "extra": "ignore"
    }


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached application settings.

    Returns:
        Settings: Application configuration object

    Example:
        >>> settings = get_settings()
        >>> print(settings.rally.url)
        >>> print(settings.rally.workspace)
    """
    return Settings()


# Global settings instance
settings = get_settings()


def is_production() -> bool:
    """Check if running in production environment."""
    return settings.environment == "production"


def validate_configuration(config: Optional[Settings] = None) -> Dict[str, Any]:
    """
    Validate configuration settings and return validation results.

    Returns:
        Dict[str, Any]: Validation results with status and errors

    Example:
        >>> validation = validate_configuration()
        >>> if not validation['valid']:
        >>>     print("Configuration errors:", validation['errors'])
    """
    config = config or settings
    errors = []
    warnings = []

    if not config.rally.api_token or not config.rally.api_token.get_secret_value():
        errors.append("Rally API token is required")

    if not config.rally.workspace:
        errors.append("Rally workspace name is required")

    if config.environment == "production":
        if not config.github.webhook_secret:
            errors.append("GitHub webhook secret is required in production")
        if config.debug:
            errors.append("Debug mode cannot be enabled in production")

    if config.github.signature_required and not config.github.webhook_secret:
        errors.append("Signature verification is required but no webhook secret is set")
    elif not config.github.webhook_secret:
        warnings.append("Webhook signatures are not verified")

    return {
        "valid": len(errors) == 0,
        "errors": errors,
        "warnings": warnings,
        "environment": config.environment,
    }


def export_config(config: Optional[Settings] = None) -> Dict[str, Any]:
    """
    Export configuration for external tools and monitoring.

    Returns:
        Dict[str, Any]: Configuration export (without sensitive data)
    """
    config = config or settings
    return {
        "app_name": config.app_name,
        "version": config.version,
        "environment": config.environment,
        "debug": config.debug,
        "rally": {
            "url": config.rally.url,
            "workspace": config.rally.workspace,
            "request_timeout": config.rally.request_timeout,
            "api_token": "configured" if config.rally.api_token else "missing",
        },
        "github": {
            "webhook_secret": "configured" if config.github.webhook_secret else "missing",
            "signature_required": config.github.signature_required,
        },
        "redis": {
            "events_enabled": config.redis.events_enabled,
            "channel": config.redis.channel,
        },
        "monitoring": {
            "log_level": config.monitoring.log_level,
            "enable_metrics": config.monitoring.enable_metrics,
        },
        "service": {
            "host": config.service.host,
            "port": config.service.port,
        },
        "sync": {
            "max_concurrent_pushes": config.sync.max_concurrent_pushes,
            "push_timeout_seconds": config.sync.push_timeout_seconds,
        },
    }


if __name__ == "__main__":
    """Configuration validation script."""
    import json

    validation = validate_configuration()
    config_export = export_config()

    print("Configuration Validation:")
    print(json.dumps(validation, indent=2))

    print("\nConfiguration Export:")
    print(json.dumps(config_export, indent=2))

    if not validation["valid"]:
        exit(1)
