"""
Configuration module for database and service connections.
"""
from .settings import Settings, get_settings
from .database import (
    PostgresConfig,
    RedisConfig,
    get_postgres_config,
    get_redis_config,
    create_postgres_pool,
    create_activity_recorder,
)

__all__ = [
    'Settings',
    'get_settings',
    'PostgresConfig',
    'RedisConfig',
    'get_postgres_config',
    'get_redis_config',
    'create_postgres_pool',
    'create_activity_recorder',
]
