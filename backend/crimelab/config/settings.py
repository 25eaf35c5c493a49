from pydantic_settings import BaseSettings
from pydantic import Field, field_validator
from functools import lru_cache
from typing import Optional


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Environment variables can come from:
    - docker-compose.yml environment section
    - .env file (for secrets like storefront tokens)
    - System environment

    Variable names match docker-compose conventions:
    - POSTGRES_HOST, POSTGRES_PORT, etc. (for the case/evidence database)
    - REDIS_URL (for the activity stream)
    - SHOPIFY_STORE_DOMAIN, SHOPIFY_ADMIN_TOKEN, SHOPIFY_STOREFRONT_TOKEN
    """

    # Environment
    environment: str = "development"

    # PostgreSQL (from docker-compose)
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    postgres_user: str = "crimelab_user"
    postgres_password: str = "crimelab_pass"
    postgres_db: str = "crimelab"
    database_url: Optional[str] = Field(default=None, validate_default=True)

    # Redis (activity stream)
    redis_url: str = "redis://localhost:6379"
    activity_stream_key: str = "crimelab:activities"
    activity_retention_seconds: int = 7 * 24 * 3600

    # Live feed
    feed_poll_interval_seconds: float = 3.0
    feed_max_lifetime_seconds: float = 300.0
    feed_batch_size: int = 10
    active_session_window_seconds: int = 30

    # Analytics
    analytics_window_seconds: int = 24 * 3600
    analytics_timeline_seconds: int = 3600
    analytics_timeline_bucket_seconds: int = 600

    # Storefront (Shopify)
    shopify_store_domain: str = ""
    shopify_admin_token: str = ""
    shopify_storefront_token: str = ""
    shopify_api_version: str = "2024-10"
    catalog_cache_ttl_seconds: int = 300

    # Resolution committer
    commit_max_attempts: int = 5
    announce_lease_seconds: int = 30

    class Config:
        env_file = ".env"
        case_sensitive = False
        extra = "ignore"  # Ignore extra env vars

    @field_validator('database_url', mode='before')
    @classmethod
    def construct_database_url(cls, v, info):
        """Construct database URL from components if not explicitly set"""
        if v:
            return v

        data = info.data
        host = data.get('postgres_host', 'localhost')
        port = data.get('postgres_port', 5432)
        user = data.get('postgres_user', 'crimelab_user')
        password = data.get('postgres_password', 'crimelab_pass')
        db = data.get('postgres_db', 'crimelab')

        return f"postgresql://{user}:{password}@{host}:{port}/{db}"

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()
