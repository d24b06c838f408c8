"""
权限模块 - 权限继承引擎

按用户的角色计算完整权限集合：

1. 超级管理员旁路：直接返回通配权限集合
2. 读取用户角色及各角色权限
3. 继承策略组合多个角色的集合
4. 合并策略合并用户直授权限
5. 按用户缓存结果，变更时显式失效

使用示例:
    from yauthz.permission import PermissionEngine, InMemoryRoleStore, Principal

    engine = PermissionEngine(store)
    principal = Principal(user_id=100, department_id=2)

    engine.calculate_permissions(principal)          # frozenset({"doc:edit", ...})
    engine.has_permission(principal, "doc:edit")     # True

    # 角色权限变更后
    engine.invalidate_role(role_id)
"""

from typing import FrozenSet, Iterable, List, Optional, Union

from yauthz.cache import CacheBackend, MemoryBackend
from yauthz.config import PermissionSettings
from yauthz.exceptions import NotFoundError
from yauthz.log import get_logger

from .cache import PermissionCache
from .enums import InheritanceStrategy, MergeStrategy
from .models import PermissionSet, Principal
from .store import RoleStore
from .strategies import (
    InheritanceFunc,
    MergeFunc,
    RoleGrant,
    additive,
    resolve_inheritance,
    resolve_merge,
)

logger = get_logger("yauthz.permission.engine")


class PermissionEngine:
    """权限继承引擎

    计算过程无副作用（缓存除外），多线程重复计算是安全的，不需要加锁。
    """

    def __init__(
        self,
        store: RoleStore,
        settings: Optional[PermissionSettings] = None,
        cache: Optional[PermissionCache] = None,
        cache_backend: Optional[CacheBackend] = None,
        inheritance_strategy: Union[str, InheritanceStrategy, InheritanceFunc, None] = None,
        merge_strategy: Union[str, MergeStrategy, MergeFunc, None] = None,
        use_cache: bool = True,
    ):
        """
        Args:
            store: 角色权限存储
            settings: 权限继承配置，默认读取环境变量
            cache: 结果缓存，默认基于 cache_backend 创建
            cache_backend: 缓存后端，未提供时创建不带清理线程的内存后端
            inheritance_strategy: 覆盖配置中的继承策略，可传自定义函数
            merge_strategy: 覆盖配置中的合并策略，可传自定义函数
            use_cache: 是否启用结果缓存
        """
        self.store = store
        self.settings = settings or PermissionSettings()
        self._inherit = resolve_inheritance(inheritance_strategy or self.settings.inheritance_strategy)
        self._merge = resolve_merge(merge_strategy or self.settings.merge_strategy)
        self.use_cache = use_cache

        if cache is None and use_cache:
            backend = cache_backend or MemoryBackend(
                maxsize=self.settings.cache_maxsize,
                ttl=self.settings.cache_timeout_seconds,
                sweep_interval=None,
            )
            cache = PermissionCache(backend, ttl=self.settings.cache_timeout_seconds)
        self.cache = cache

    # ==================== 权限计算 ====================

    def calculate_permission_set(self, principal: Principal) -> PermissionSet:
        """计算用户的完整权限集合（缓存优先）

        Raises:
            NotFoundError: 用户关联了不存在的角色
        """
        if principal.is_admin and self.settings.admin_auto_inherit_all:
            return PermissionSet.universal()

        if not self.use_cache:
            return self._compute(principal)

        # 槽位在计算前确定，计算期间的失效会让本次写入落空
        slot = self.cache.permissions_slot(principal.user_id)
        cached = self.cache.lookup(slot)
        if cached is not None:
            logger.debug(f"Permission cache hit: user_id={principal.user_id}")
            return cached

        result = self._compute(principal)
        self.cache.store(slot, result)
        return result

    def calculate_permissions(self, principal: Principal) -> FrozenSet[str]:
        """计算用户的权限标识集合"""
        return self.calculate_permission_set(principal).permissions

    def _compute(self, principal: Principal) -> PermissionSet:
        user_id = principal.user_id
        grants = self._load_role_grants(user_id)

        if not self.settings.enabled:
            result = additive(grants)
        else:
            result = self._inherit(grants)
            direct = self.store.direct_permissions_of_user(user_id)
            if direct is not None:
                result = self._merge(result, set(direct))

        logger.debug(
            f"Permissions calculated: user_id={user_id}, roles={len(grants)}, "
            f"permissions={len(result.permissions)}, menus={len(result.menu_ids)}"
        )
        return result

    def _load_role_grants(self, user_id: int) -> List[RoleGrant]:
        """读取用户启用中的角色及其权限，按角色 id 排序保证结果稳定"""
        grants: List[RoleGrant] = []
        for role_id in sorted(self.store.roles_of_user(user_id)):
            role = self.store.get_role(role_id)
            if not role.is_enabled:
                continue
            granted = PermissionSet(
                self.store.permissions_of_role(role_id),
                self.store.menus_of_role(role_id),
            )
            grants.append((role, granted))
        return grants

    def role_keys_of(self, principal: Principal) -> FrozenSet[str]:
        """用户启用中的角色 key 集合"""
        keys = set()
        for role_id in self.store.roles_of_user(principal.user_id):
            role = self.store.get_role(role_id)
            if role.is_enabled:
                keys.add(role.key)
        if principal.is_admin and self.settings.admin_auto_inherit_all:
            keys.add("admin")
        return frozenset(keys)

    # ==================== 权限检查 ====================

    def has_permission(self, principal: Principal, permission: str) -> bool:
        """检查用户是否拥有权限"""
        if not permission:
            return False
        return self.calculate_permission_set(principal).has_permission(permission)

    def has_menu_permission(self, principal: Principal, menu_id: int) -> bool:
        """检查用户是否拥有菜单"""
        if menu_id is None:
            return False
        return self.calculate_permission_set(principal).has_menu(menu_id)

    def has_any_permission(self, principal: Principal, *permissions: str) -> bool:
        if not permissions:
            return False
        return self.calculate_permission_set(principal).has_any(*permissions)

    def has_all_permissions(self, principal: Principal, *permissions: str) -> bool:
        if not permissions:
            return False
        return self.calculate_permission_set(principal).has_all(*permissions)

    # ==================== 缓存预热 ====================

    def warm_up(self, principals: Iterable[Principal]) -> int:
        """预先计算并缓存一批用户的权限（如启动时加载活跃用户）

        单个用户失败只记录日志，不影响其余用户。返回成功预热的用户数。
        """
        warmed = 0
        for principal in principals:
            if principal.is_admin and self.settings.admin_auto_inherit_all:
                continue
            try:
                self.calculate_permission_set(principal)
            except NotFoundError as e:
                logger.warning(f"Permission warm-up skipped: user_id={principal.user_id}, {e.message}")
                continue
            warmed += 1
        logger.info(f"Permission cache warmed: users={warmed}")
        return warmed

    # ==================== 缓存失效 ====================
    # 角色权限、用户角色分配、用户直授权限变更后必须调用

    def invalidate(self, user_id: int) -> None:
        """使用户的权限缓存失效（用户角色分配或直授权限变更时调用）"""
        if self.cache is not None:
            self.cache.invalidate_user(user_id)
        logger.info(f"Permissions invalidated: user_id={user_id}")

    def invalidate_users(self, user_ids) -> None:
        """批量失效，用于删除角色等先解除关联再失效的场景"""
        user_ids = list(user_ids)
        if self.cache is not None:
            self.cache.invalidate_users(user_ids)
        logger.info(f"Permissions invalidated: users={len(user_ids)}")

    def invalidate_role(self, role_id: int) -> None:
        """使拥有该角色的所有用户缓存失效（角色权限变更时调用）"""
        user_ids = self.store.users_of_role(role_id)
        if self.cache is not None:
            self.cache.invalidate_users(user_ids)
        logger.info(f"Permissions invalidated for role: role_id={role_id}, users={len(user_ids)}")

    def invalidate_all(self) -> None:
        if self.cache is not None:
            self.cache.invalidate_all()


__all__ = [
    "PermissionEngine",
]
