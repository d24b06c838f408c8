"""
权限模块 - 权限计算结果缓存

在 CacheBackend 之上按用户缓存权限集合和有效数据范围。

失败策略：
- 读取失败视为未命中（调用方重新计算）
- 写入失败只记录日志
- 失效失败向上抛出 CacheUnavailableError，调用方必须感知

计算前先用 permissions_slot / data_scope_slot 取得槽位（包含全局代数和用户版本），
计算完成后写回同一槽位。计算期间发生的失效会切换用户版本，
迟到的写入落在已作废的键上，不会覆盖失效结果。

使用示例:
    from yauthz.cache import MemoryBackend
    from yauthz.permission.cache import PermissionCache

    cache = PermissionCache(MemoryBackend(sweep_interval=None), ttl=300)

    slot = cache.permissions_slot(1)
    if cache.lookup(slot) is None:
        cache.store(slot, compute())

    cache.invalidate_user(1)
"""

from typing import Any, Dict, Iterable, Optional
from uuid import uuid4

from yauthz.cache import CacheBackend, CacheStats
from yauthz.exceptions import CacheUnavailableError
from yauthz.log import get_logger

from .models import EffectiveDataScope, PermissionSet

logger = get_logger("yauthz.permission.cache")

PERMISSIONS_PREFIX = "user:permissions"
DATA_SCOPE_PREFIX = "user:datascope"
GENERATION_KEY = "user:generation"
VERSION_PREFIX = "user:version"

# 代数键和版本键只需比结果缓存活得久
_GENERATION_TTL = 30 * 24 * 3600


class PermissionCache:
    """权限计算结果缓存

    键格式: {prefix}:{user_id}:g{generation}:v{version}

    generation 和每个用户的 version 都存放在后端中：
    invalidate_all 写入新的代数，invalidate_user 写入该用户的新版本，
    多进程共享 Redis 时同样立即生效；旧键上的条目等待 TTL 自然过期。
    """

    def __init__(self, backend: CacheBackend, ttl: int = 300, enable_stats: bool = True):
        self._backend = backend
        self._ttl = ttl
        self._stats = CacheStats() if enable_stats else None

    # ==================== 内部方法 ====================

    def _generation(self) -> str:
        return self._backend.get(GENERATION_KEY) or "0"

    def _version(self, user_id: int) -> str:
        return self._backend.get(f"{VERSION_PREFIX}:{user_id}") or "0"

    def _make_key(self, prefix: str, user_id: int) -> str:
        return f"{prefix}:{user_id}:g{self._generation()}:v{self._version(user_id)}"

    def _record(self, name: str, count: int = 1):
        if self._stats is not None:
            self._stats.record(name, count)

    def _slot(self, prefix: str, user_id: int) -> Optional[str]:
        try:
            return self._make_key(prefix, user_id)
        except CacheUnavailableError as e:
            logger.warning(f"Permission cache unavailable, recomputing: user_id={user_id}, {e.message}")
            self._record("failures")
            return None

    # ==================== 槽位读写 ====================

    def permissions_slot(self, user_id: int) -> Optional[str]:
        """用户权限集合的当前槽位，后端不可用时返回 None（不读也不写）"""
        return self._slot(PERMISSIONS_PREFIX, user_id)

    def data_scope_slot(self, user_id: int) -> Optional[str]:
        return self._slot(DATA_SCOPE_PREFIX, user_id)

    def lookup(self, slot: Optional[str]) -> Optional[Any]:
        if slot is None:
            self._record("misses")
            return None
        try:
            value = self._backend.get(slot)
        except CacheUnavailableError as e:
            logger.warning(f"Permission cache read failed, recomputing: key={slot}, {e.message}")
            self._record("failures")
            self._record("misses")
            return None
        self._record("hits" if value is not None else "misses")
        return value

    def store(self, slot: Optional[str], value: Any) -> None:
        if slot is None:
            return
        try:
            self._backend.set(slot, value, ttl=self._ttl)
        except CacheUnavailableError as e:
            logger.warning(f"Permission cache write failed: key={slot}, {e.message}")
            self._record("failures")

    # ==================== 按用户读写 ====================

    def get_permissions(self, user_id: int) -> Optional[PermissionSet]:
        """获取用户权限集合，未命中返回 None"""
        return self.lookup(self.permissions_slot(user_id))

    def set_permissions(self, user_id: int, permissions: PermissionSet) -> None:
        self.store(self.permissions_slot(user_id), permissions)

    def get_data_scope(self, user_id: int) -> Optional[EffectiveDataScope]:
        """获取用户有效数据范围，未命中返回 None"""
        return self.lookup(self.data_scope_slot(user_id))

    def set_data_scope(self, user_id: int, scope: EffectiveDataScope) -> None:
        self.store(self.data_scope_slot(user_id), scope)

    # ==================== 失效策略 ====================

    def invalidate_user(self, user_id: int) -> None:
        """使单个用户的权限和数据范围缓存失效

        先切换用户版本，再删除旧版本下的条目。

        Raises:
            CacheUnavailableError: 后端不可用，失效未完成
        """
        stale_permissions = self._make_key(PERMISSIONS_PREFIX, user_id)
        stale_scope = self._make_key(DATA_SCOPE_PREFIX, user_id)
        self._backend.set(f"{VERSION_PREFIX}:{user_id}", uuid4().hex[:12], ttl=_GENERATION_TTL)
        self._backend.delete(stale_permissions)
        self._backend.delete(stale_scope)
        self._record("invalidations")
        logger.debug(f"Permission cache invalidated for user: {user_id}")

    def invalidate_users(self, user_ids: Iterable[int]) -> None:
        user_ids = list(user_ids)
        for user_id in user_ids:
            self.invalidate_user(user_id)
        logger.debug(f"Permission cache invalidated for {len(user_ids)} users")

    def invalidate_all(self) -> None:
        """切换代数，使所有用户的缓存失效"""
        generation = uuid4().hex[:12]
        self._backend.set(GENERATION_KEY, generation, ttl=_GENERATION_TTL)
        self._record("invalidations")
        logger.info(f"All permission cache invalidated, new generation: {generation}")

    # ==================== 统计 ====================

    @property
    def stats(self) -> Optional[CacheStats]:
        return self._stats

    def get_cache_info(self) -> Dict[str, Any]:
        info: Dict[str, Any] = {"ttl": self._ttl, "backend": self._backend.get_stats()}
        if self._stats:
            info["stats"] = self._stats.to_dict()
        return info


__all__ = [
    "PermissionCache",
]
