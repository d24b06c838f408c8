"""缓存后端工厂

进程启动时按 CacheSettings 选择后端，调用方只依赖 CacheBackend 接口。
"""

from typing import Optional

import redis

from yauthz.config import CacheSettings, RedisSettings
from yauthz.log import get_logger

from .backends import CacheBackend, MemoryBackend, RedisBackend

logger = get_logger("yauthz.cache")


def create_cache_backend(
    settings: Optional[CacheSettings] = None,
    redis_settings: Optional[RedisSettings] = None,
    redis_client=None,
) -> CacheBackend:
    """根据配置创建缓存后端

    Args:
        settings: 缓存配置，默认读取环境变量
        redis_settings: Redis 配置，backend=redis 且未传入 redis_client 时使用
        redis_client: 已创建的 Redis 客户端（优先使用）

    Raises:
        ValueError: backend=redis 但没有可用的连接信息

    使用示例:
        backend = create_cache_backend(settings.cache, settings.redis)
    """
    settings = settings or CacheSettings()

    if settings.backend == "redis":
        if redis_client is None:
            redis_settings = redis_settings or RedisSettings()
            if not redis_settings.url:
                raise ValueError("缓存后端为 redis，但未配置 Redis 连接 URL")
            redis_client = redis.Redis.from_url(
                redis_settings.url,
                max_connections=redis_settings.max_connections,
                socket_timeout=redis_settings.socket_timeout,
            )
        logger.info(f"Using redis cache backend: prefix={settings.key_prefix}")
        return RedisBackend(
            redis_client,
            prefix=settings.key_prefix,
            ttl=settings.default_ttl,
        )

    logger.info(
        f"Using memory cache backend: maxsize={settings.maxsize}, "
        f"sweep_interval={settings.sweep_interval_seconds}"
    )
    return MemoryBackend(
        maxsize=settings.maxsize,
        ttl=settings.default_ttl,
        sweep_interval=settings.sweep_interval_seconds,
    )
