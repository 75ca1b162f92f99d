"""
Configuration management for the Bureau task manager backend.
Centralized configuration with environment variables.
"""
import logging
from typing import Dict, List, Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field

logger = logging.getLogger(__name__)


class SecurityError(Exception):
    """Security configuration error."""
    pass


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    # Environment
    environment: str = Field(default="development", validation_alias="ENVIRONMENT")
    app_name: str = Field(default="Bureau Task Manager", validation_alias="APP_NAME")
    app_version: str = Field(default="1.0.0", validation_alias="APP_VERSION")
    debug: bool = Field(default=False, validation_alias="DEBUG")

    # JWT configuration
    jwt_secret: str = Field(default="", validation_alias="JWT_SECRET")
    jwt_algorithm: str = Field(default="HS256", validation_alias="JWT_ALGORITHM")
    jwt_issuer: str = Field(default="bureau-task-manager", validation_alias="JWT_ISSUER")
    jwt_expiration_hours: int = Field(default=24, validation_alias="JWT_EXPIRATION_HOURS")
    password_hash_rounds: int = Field(default=12, validation_alias="PASSWORD_HASH_ROUNDS")

    # General API limiter (fixed window, soft + hard caps)
    api_rate_window_seconds: int = Field(default=15 * 60, validation_alias="API_RATE_WINDOW_SECONDS")
    api_rate_soft_limit: int = Field(default=50, validation_alias="API_RATE_SOFT_LIMIT")
    api_rate_hard_limit: int = Field(default=100, validation_alias="API_RATE_HARD_LIMIT")
    api_rate_delay_ms: int = Field(default=500, validation_alias="API_RATE_DELAY_MS")

    # Auth limiter (only unsuccessful authentications count)
    auth_rate_window_seconds: int = Field(default=15 * 60, validation_alias="AUTH_RATE_WINDOW_SECONDS")
    auth_rate_limit: int = Field(default=5, validation_alias="AUTH_RATE_LIMIT")

    # Brute force protection
    max_login_attempts: int = Field(default=5, validation_alias="MAX_LOGIN_ATTEMPTS")
    lockout_window_seconds: int = Field(default=15 * 60, validation_alias="LOCKOUT_WINDOW_SECONDS")
    brute_force_sweep_seconds: int = Field(default=30 * 60, validation_alias="BRUTE_FORCE_SWEEP_SECONDS")

    # Real-time channel
    ws_max_connections_per_user: int = Field(default=3, validation_alias="WS_MAX_CONNECTIONS_PER_USER")
    ws_max_attempts_per_ip: int = Field(default=10, validation_alias="WS_MAX_ATTEMPTS_PER_IP")
    ws_attempt_window_seconds: int = Field(default=60 * 60, validation_alias="WS_ATTEMPT_WINDOW_SECONDS")
    ws_sweep_seconds: int = Field(default=60 * 60, validation_alias="WS_SWEEP_SECONDS")

    # Client identity
    trusted_networks: List[str] = Field(
        default=["127.0.0.0/8", "::1/128", "10.0.0.0/8", "192.168.0.0/16"],
        validation_alias="TRUSTED_NETWORKS"
    )
    trust_forwarded_for: bool = Field(default=False, validation_alias="TRUST_FORWARDED_FOR")

    # Input handling
    max_body_size: int = Field(default=10 * 1024 * 1024, validation_alias="MAX_BODY_SIZE")  # 10MB
    sanitize_max_length: int = Field(default=1000, validation_alias="SANITIZE_MAX_LENGTH")
    sanitize_field_limits: Dict[str, int] = Field(
        default={"description": 2000, "text_content": 10000},
        validation_alias="SANITIZE_FIELD_LIMITS"
    )
    param_pollution_whitelist: List[str] = Field(
        default=["tags", "categories"],
        validation_alias="PARAM_POLLUTION_WHITELIST"
    )

    # File upload configuration
    upload_dir: str = Field(default="uploads", validation_alias="UPLOAD_DIR")
    max_file_size: int = Field(default=10 * 1024 * 1024, validation_alias="MAX_FILE_SIZE")  # 10MB

    # CORS configuration
    frontend_url: Optional[str] = Field(default=None, validation_alias="FRONTEND_URL")
    cors_origins: List[str] = Field(
        default=["http://localhost:3000", "http://localhost:5173"],
        validation_alias="ALLOWED_ORIGINS"
    )
    cors_max_age: int = Field(default=600, validation_alias="CORS_MAX_AGE")

    # Redis configuration (optional, shared attempt store)
    redis_url: Optional[str] = Field(default=None, validation_alias="REDIS_URL")
    redis_timeout: int = Field(default=5, validation_alias="REDIS_TIMEOUT")

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    def allowed_origins(self) -> List[str]:
        """Explicitly configured origins, frontend URL included."""
        origins = list(self.cors_origins)
        if self.frontend_url and self.frontend_url not in origins:
            origins.append(self.frontend_url)
        return origins


def validate_security_settings(config: Settings) -> None:
    """
    Validate security-critical settings before the app starts serving.

    Raises:
        SecurityError: if the JWT secret is unusable for the environment.
    """
    if not config.jwt_secret:
        raise SecurityError("JWT_SECRET must be set")

    if len(config.jwt_secret) < 32:
        if config.is_production():
            raise SecurityError("JWT_SECRET must be at least 32 characters in production")
        logger.warning("⚠️ [CONFIG] JWT_SECRET is shorter than 32 characters")

    if config.jwt_algorithm != "HS256":
        raise SecurityError(f"Unsupported JWT algorithm: {config.jwt_algorithm}")

    if config.api_rate_soft_limit > config.api_rate_hard_limit:
        raise SecurityError("API_RATE_SOFT_LIMIT cannot exceed API_RATE_HARD_LIMIT")


settings = Settings()
