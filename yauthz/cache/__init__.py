"""缓存模块

使用示例:
    from yauthz.cache import create_cache_backend, MemoryBackend

    backend = create_cache_backend()          # 默认内存后端
    backend.set("key", "value", ttl=60)
"""

from .backends import (
    CacheStats,
    CacheBackend,
    MemoryBackend,
    RedisBackend,
    PickleSerializer,
)
from .factory import create_cache_backend

__all__ = [
    "CacheStats",
    "CacheBackend",
    "MemoryBackend",
    "RedisBackend",
    "PickleSerializer",
    "create_cache_backend",
]
