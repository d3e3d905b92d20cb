"""Application settings via pydantic-settings."""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables with ECHAT_ prefix."""

    model_config = SettingsConfigDict(
        env_prefix="ECHAT_",
        env_file=".env",
        case_sensitive=False,
    )

    # --- Core ---
    app_version: str = "0.1.0"
    debug: bool = False
    environment: str = "development"
    cors_origins: list[str] = ["http://localhost:3000"]
    log_level: str = "INFO"
    log_format: str = "json"

    # --- Region selection ---
    deployment_region: str | None = None  # "CN" | "INTL"; unset -> per-request resolution
    force_global_database: bool = False
    cn_host_suffixes: list[str] = [".cn"]
    global_host_suffixes: list[str] = []
    geoip_providers: list[str] = ["ipapi", "ip-api", "ipip"]
    geoip_timeout_seconds: float = 2.0
    region_fail_closed: bool = False

    # --- Global store (row store) ---
    global_database_url: str = ""
    global_pool_size: int = 10
    global_auto_create_schema: bool = False

    # --- CN store (document store) ---
    cn_redis_url: str = ""
    cn_key_prefix: str = "echat"

    storage_timeout_seconds: float = 5.0
    mirror_status_to_secondary: bool = False

    # --- Verification codes ---
    verification_code_length: int = 6
    verification_code_ttl_minutes: int = 10
    verification_resend_interval_seconds: int = 60
    verification_max_attempts: int = 5

    # --- Sessions ---
    jwt_secret_key: str = "change-me-in-production"
    jwt_algorithm: str = "HS256"
    jwt_issuer: str = "echat"
    session_ttl_hours: int = 24 * 7

    # --- Password ---
    password_min_length: int = 8
    password_max_length: int = 128

    # --- Email delivery ---
    email_provider: str = "console"
    email_from_address: str = "noreply@echat.local"
    email_from_name: str = "Enterprise Chat"
    smtp_host: str = "localhost"
    smtp_port: int = 587
    smtp_username: str = ""
    smtp_password: str = ""
    smtp_use_tls: bool = True
    resend_api_key: str = ""


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings."""
    return Settings()
