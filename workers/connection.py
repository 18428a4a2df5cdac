"""
Redis Connection Settings

Shared by the queue (API side) and the worker. Keep this module free of
job imports: the job bodies import the queue.
"""

from arq.connections import RedisSettings

from config.settings import settings


def get_redis_settings() -> RedisSettings:
    """Redis connection settings from REDIS_URL."""
    return RedisSettings.from_dsn(settings.redis_url)
