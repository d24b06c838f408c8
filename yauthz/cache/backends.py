"""缓存后端

会话快照、刷新记录和权限计算结果都存放在 CacheBackend 中。提供两种实现：

- MemoryBackend: 单进程部署，基于 cachetools.TTLCache，后台线程定时清理过期条目
- RedisBackend: 多进程 / 多实例部署，依赖 Redis 原生过期

进程启动时按 CacheSettings.backend 选择其一（见 factory.create_cache_backend）。
"""

import math
import pickle
import threading
import time
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterator, Optional

from cachetools import TTLCache
from redis.exceptions import RedisError

from yauthz.exceptions import CacheUnavailableError
from yauthz.log import get_logger

logger = get_logger("yauthz.cache")


@dataclass
class CacheStats:
    """命中 / 未命中等计数，record() 线程安全"""
    hits: int = 0
    misses: int = 0
    invalidations: int = 0
    evictions: int = 0
    failures: int = 0
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def record(self, counter: str, count: int = 1) -> None:
        with self._lock:
            setattr(self, counter, getattr(self, counter) + count)

    @property
    def hit_rate(self) -> float:
        lookups = self.hits + self.misses
        return self.hits / lookups if lookups else 0.0

    def reset(self) -> None:
        with self._lock:
            self.hits = self.misses = self.invalidations = self.evictions = self.failures = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "hits": self.hits,
            "misses": self.misses,
            "hit_rate": f"{self.hit_rate:.2%}",
            "invalidations": self.invalidations,
            "evictions": self.evictions,
            "failures": self.failures,
        }


class CacheBackend(ABC):
    """缓存能力接口

    实现需支持多线程并发读写；后端自身故障时抛出 CacheUnavailableError，
    是否降级由调用方决定。
    """

    @abstractmethod
    def get(self, key: str) -> Optional[Any]:
        """不存在或已过期返回 None"""

    @abstractmethod
    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        """写入，ttl 单位为秒，None 使用后端默认值"""

    @abstractmethod
    def delete(self, key: str) -> bool:
        """删除，返回删除前键是否存在"""

    @abstractmethod
    def clear(self) -> None:
        ...

    @abstractmethod
    def get_stats(self) -> Dict[str, Any]:
        ...

    def close(self) -> None:
        """释放线程或连接，默认无操作"""


class _Deadline:
    """短于默认 TTL 的条目携带自己的截止时间"""
    __slots__ = ("value", "expires_at")

    def __init__(self, value: Any, expires_at: float):
        self.value = value
        self.expires_at = expires_at


class MemoryBackend(CacheBackend):
    """进程内缓存后端

    TTLCache 以默认 ttl 统一过期；set 指定更短的 ttl 时，值包一层 _Deadline，
    在 get 与 sweep 时按各自的截止时间剔除。ttl 大于默认值时按默认值截断。

    所有操作共用一把锁，delete 返回后后续 get 不会再读到旧值。

    使用示例:
        backend = MemoryBackend(maxsize=1000, ttl=3600, sweep_interval=60)
        backend.set("login_user:abc", snapshot, ttl=1800)
        backend.get("login_user:abc")
        backend.close()
    """

    def __init__(
        self,
        maxsize: int = 10000,
        ttl: float = 3600,
        sweep_interval: Optional[float] = 60.0,
        enable_stats: bool = True,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            maxsize: 条目上限，超出时按 LRU 淘汰
            ttl: 默认过期秒数，也是单键 ttl 的上限
            sweep_interval: 清理线程的运行间隔，None 不启动线程
            enable_stats: 是否计数
            clock: 时间源，测试时注入
        """
        self._clock = clock
        self._default_ttl = ttl
        self._maxsize = maxsize
        self._entries: TTLCache = TTLCache(maxsize=maxsize, ttl=ttl, timer=clock)
        self._lock = threading.RLock()
        self._stats = CacheStats() if enable_stats else None

        self._sweep_interval = sweep_interval
        self._stopped = threading.Event()
        self._sweeper: Optional[threading.Thread] = None
        if sweep_interval is not None:
            self._sweeper = threading.Thread(
                target=self._sweep_loop,
                name=f"yauthz-cache-sweep-{id(self):x}",
                daemon=True,
            )
            self._sweeper.start()

        logger.debug(f"MemoryBackend ready: maxsize={maxsize}, ttl={ttl}, sweep_interval={sweep_interval}")

    def _count(self, counter: str, count: int = 1) -> None:
        if self._stats is not None:
            self._stats.record(counter, count)

    def _expired(self, raw: Any, now: float) -> bool:
        return isinstance(raw, _Deadline) and now >= raw.expires_at

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            raw = self._entries.get(key)
            if raw is not None and self._expired(raw, self._clock()):
                del self._entries[key]
                raw = None
            if raw is None:
                self._count("misses")
                return None
            self._count("hits")
            return raw.value if isinstance(raw, _Deadline) else raw

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        with self._lock:
            if ttl is not None and ttl < self._default_ttl:
                value = _Deadline(value, self._clock() + ttl)
            self._entries[key] = value

    def delete(self, key: str) -> bool:
        with self._lock:
            existed = self._entries.pop(key, None) is not None
        if existed:
            self._count("invalidations")
        return existed

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
        self._count("invalidations")
        logger.info("MemoryBackend cleared")

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def sweep(self) -> int:
        """立即清除所有过期条目，返回清除数量"""
        with self._lock:
            size_before = self._entries.currsize
            self._entries.expire()
            now = self._clock()
            for key in [k for k, raw in self._entries.items() if self._expired(raw, now)]:
                del self._entries[key]
            removed = size_before - self._entries.currsize
        if removed:
            self._count("evictions", removed)
            logger.debug(f"MemoryBackend sweep removed {removed} entries")
        return removed

    def _sweep_loop(self) -> None:
        while not self._stopped.wait(self._sweep_interval):
            try:
                self.sweep()
            except Exception:
                logger.exception("MemoryBackend sweep failed")

    @property
    def sweeping(self) -> bool:
        return self._sweeper is not None and self._sweeper.is_alive()

    def close(self) -> None:
        self._stopped.set()
        if self._sweeper is not None:
            self._sweeper.join(timeout=5)
            self._sweeper = None

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            info: Dict[str, Any] = {
                "backend": "memory",
                "size": len(self._entries),
                "maxsize": self._maxsize,
                "ttl": self._default_ttl,
                "sweep_interval": self._sweep_interval,
            }
        if self._stats is not None:
            info.update(self._stats.to_dict())
        return info


class PickleSerializer:
    """RedisBackend 默认序列化器，frozen dataclass 快照可直接存取"""

    def dumps(self, value: Any) -> bytes:
        return pickle.dumps(value, protocol=pickle.HIGHEST_PROTOCOL)

    def loads(self, data: bytes) -> Any:
        return pickle.loads(data)


class RedisBackend(CacheBackend):
    """Redis 缓存后端

    写入使用 SETEX，过期交给 Redis；任何 RedisError 都转换为
    CacheUnavailableError(operation) 抛出，原异常保留在 __cause__。

    使用示例:
        import redis
        backend = RedisBackend(redis.Redis.from_url("redis://localhost:6379/0"), prefix="yauthz:")
    """

    def __init__(
        self,
        redis_client,
        prefix: str = "yauthz:",
        ttl: float = 3600,
        enable_stats: bool = True,
        serializer: Optional[Any] = None,
    ):
        self._redis = redis_client
        self._prefix = prefix
        self._default_ttl = ttl
        self._stats = CacheStats() if enable_stats else None
        self._serializer = serializer if serializer is not None else PickleSerializer()

        logger.debug(f"RedisBackend ready: prefix={prefix}, ttl={ttl}")

    def _key(self, key: str) -> str:
        return self._prefix + key

    def _count(self, counter: str, count: int = 1) -> None:
        if self._stats is not None:
            self._stats.record(counter, count)

    @contextmanager
    def _guard(self, operation: str) -> Iterator[None]:
        try:
            yield
        except RedisError as e:
            self._count("failures")
            logger.warning(f"Redis {operation} failed: {e}")
            raise CacheUnavailableError(operation, str(e)) from e

    def get(self, key: str) -> Optional[Any]:
        with self._guard("get"):
            data = self._redis.get(self._key(key))
        if data is None:
            self._count("misses")
            return None
        self._count("hits")
        return self._serializer.loads(data)

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        # SETEX 只接受正整数秒，向上取整
        seconds = max(1, math.ceil(self._default_ttl if ttl is None else ttl))
        payload = self._serializer.dumps(value)
        with self._guard("set"):
            self._redis.setex(self._key(key), seconds, payload)

    def delete(self, key: str) -> bool:
        with self._guard("delete"):
            deleted = bool(self._redis.delete(self._key(key)))
        if deleted:
            self._count("invalidations")
        return deleted

    def clear(self) -> None:
        """SCAN 出本前缀下的键后逐批删除"""
        pattern = self._prefix + "*"
        with self._guard("clear"):
            for batch in self._scan_batches(pattern):
                self._redis.delete(*batch)
        self._count("invalidations")
        logger.info(f"RedisBackend cleared: prefix={self._prefix}")

    def _scan_batches(self, pattern: str):
        cursor = 0
        while True:
            cursor, keys = self._redis.scan(cursor, match=pattern, count=100)
            if keys:
                yield keys
            if cursor == 0:
                return

    def close(self) -> None:
        try:
            self._redis.close()
        except RedisError as e:
            logger.warning(f"Redis close failed: {e}")

    def get_stats(self) -> Dict[str, Any]:
        info: Dict[str, Any] = {"backend": "redis", "prefix": self._prefix, "ttl": self._default_ttl}
        if self._stats is not None:
            info.update(self._stats.to_dict())
        return info


__all__ = [
    "CacheStats",
    "CacheBackend",
    "MemoryBackend",
    "RedisBackend",
    "PickleSerializer",
]
