from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Loading priority (highest to lowest):
    1. Environment variables
    2. .env file
    3. Default values below
    """

    # Environment
    environment: str = "development"
    debug: bool = True
    log_level: str = "INFO"

    # Application
    app_name: str = "Content Dashboard"
    app_version: str = "1.0.0"

    # Database
    database_url: str = "sqlite:///./dashboard.db"

    # Global admin keys (empty values are ignored)
    admin_key: str = ""
    admin_secret_key: str = ""

    # Cache settings
    cache_backend: str = "redis"  # Options: "redis", "memory", "null"
    redis_url: str = "redis://localhost:6379/0"
    tracking_link_cache_ttl: int = 3600  # Redirect lookups (1 hour)
    organization_key_cache_ttl: int = 300  # Organization API key lookups (5 minutes)

    # Queue settings
    queue_backend: str = "redis_streams"  # Options: "redis_streams", "memory"
    queue_name: str = "analytics_events"
    queue_consumer_group: str = "analytics_workers"
    queue_batch_size: int = 100
    queue_claim_idle_ms: int = 60000  # Pending messages idle this long are redelivered
    queue_max_deliveries: int = 5  # Further failures move a message to the dead-letter stream

    # Analytics
    analytics_page_size: int = 1000  # Rows per page when reading aggregate tables
    analytics_refresh_interval: int = 600  # Worker rebuilds aggregate tables every 10 minutes
    analytics_stale_after_minutes: int = 60
    analytics_data_start: str = "2024-01-01"
    available_countries_sample: int = 5000
    live_pulse_default_seconds: int = 60
    live_pulse_min_seconds: int = 10
    live_pulse_max_seconds: int = 86400

    # Pydantic v2 configuration
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @property
    def global_admin_keys(self) -> list:
        """Configured admin keys with blanks filtered out."""
        return [key for key in (self.admin_secret_key, self.admin_key) if key]


# Create settings instance
settings = Settings()
