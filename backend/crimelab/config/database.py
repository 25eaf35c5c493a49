"""
Database Configuration
======================

Centralized connection configuration for the API and the catalog CLI.
Handles PostgreSQL (cases, ledger, purchases) and Redis (activity stream).
"""
from typing import Optional
from dataclasses import dataclass

from .settings import Settings, get_settings


@dataclass
class PostgresConfig:
    """PostgreSQL connection configuration."""
    host: str
    port: int
    user: str
    password: str
    database: str
    min_size: int = 2
    max_size: int = 10
    dsn: Optional[str] = None

    @classmethod
    def from_env(
        cls,
        min_size: int = 2,
        max_size: int = 10,
        settings: Optional[Settings] = None,
    ) -> 'PostgresConfig':
        """
        Create config from environment variables.

        DATABASE_URL wins when set; otherwise Settings composes it from the
        POSTGRES_* components.
        """
        settings = settings or get_settings()
        if not settings.database_url:
            raise ValueError("DATABASE_URL or POSTGRES_HOST environment variable is required")

        return cls(
            host=settings.postgres_host,
            port=settings.postgres_port,
            user=settings.postgres_user,
            password=settings.postgres_password,
            database=settings.postgres_db,
            min_size=min_size,
            max_size=max_size,
            dsn=settings.database_url,
        )

    def to_asyncpg_kwargs(self) -> dict:
        """Convert to asyncpg.create_pool kwargs."""
        if self.dsn:
            return {'dsn': self.dsn, 'min_size': self.min_size, 'max_size': self.max_size}
        return {
            'host': self.host,
            'port': self.port,
            'user': self.user,
            'password': self.password,
            'database': self.database,
            'min_size': self.min_size,
            'max_size': self.max_size,
        }


@dataclass
class RedisConfig:
    """Redis connection configuration."""
    url: str
    stream_key: str
    retention_seconds: int

    @classmethod
    def from_env(cls, settings: Optional[Settings] = None) -> 'RedisConfig':
        """Create config from environment variables."""
        settings = settings or get_settings()
        if not settings.redis_url:
            raise ValueError("REDIS_URL environment variable is required")

        return cls(
            url=settings.redis_url,
            stream_key=settings.activity_stream_key,
            retention_seconds=settings.activity_retention_seconds,
        )


def get_postgres_config(min_size: int = 2, max_size: int = 10) -> PostgresConfig:
    """Get PostgreSQL configuration from environment."""
    return PostgresConfig.from_env(min_size=min_size, max_size=max_size)


def get_redis_config() -> RedisConfig:
    """Get Redis configuration from environment."""
    return RedisConfig.from_env()


async def create_postgres_pool(min_size: int = 2, max_size: int = 10):
    """Create PostgreSQL connection pool from environment config."""
    import asyncpg
    config = get_postgres_config(min_size=min_size, max_size=max_size)
    return await asyncpg.create_pool(**config.to_asyncpg_kwargs())


async def create_activity_recorder():
    """Create and connect the Redis-backed activity recorder from environment config."""
    from crimelab.services.activity_recorder import ActivityRecorder
    config = get_redis_config()
    recorder = ActivityRecorder(
        config.url,
        stream_key=config.stream_key,
        retention_seconds=config.retention_seconds,
    )
    await recorder.connect()
    return recorder
