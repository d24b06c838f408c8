"""
权限模块 - 数据范围解析

根据用户角色的数据范围（以及可选的用户级覆盖）计算可查询的部门集合。

优先级（宽松者胜出）: ALL > CUSTOM > DEPT_AND_CHILD > DEPT > SELF

使用示例:
    resolver = DataScopeResolver(store, tree, cache=engine.cache)

    scope = resolver.resolve_dept_filter(principal)
    if isinstance(scope, DeptSet):
        query = query.where(Order.dept_id.in_(scope.dept_ids))

    resolver.has_dept_data_permission(principal, dept_id=7)
"""

from typing import Iterable, List, Optional, Set

from yauthz.config import PermissionSettings
from yauthz.exceptions import NotFoundError
from yauthz.log import get_logger
from yauthz.organization import DepartmentTree

from .cache import PermissionCache
from .enums import DataScopeType
from .models import (
    DeptSet,
    EffectiveDataScope,
    Principal,
    Role,
    SELF_ONLY,
    SelfOnly,
    UNRESTRICTED,
    Unrestricted,
)
from .store import RoleStore

logger = get_logger("yauthz.permission.data_scope")


class DataScopeResolver:
    """数据范围解析器

    与 PermissionEngine 共用同一个 PermissionCache 时，
    engine.invalidate(user_id) 会同时清除该用户的数据范围缓存。
    部门树结构变化会影响 DEPT_AND_CHILD 的展开结果，调整部门后应调用 invalidate_all。
    """

    def __init__(
        self,
        store: RoleStore,
        tree: DepartmentTree,
        settings: Optional[PermissionSettings] = None,
        cache: Optional[PermissionCache] = None,
    ):
        self.store = store
        self.tree = tree
        self.settings = settings or PermissionSettings()
        self.cache = cache

    def _admin_bypass(self, principal: Principal) -> bool:
        return principal.is_admin and self.settings.admin_auto_inherit_all

    def _enabled_roles(self, user_id: int) -> List[Role]:
        roles = [self.store.get_role(rid) for rid in sorted(self.store.roles_of_user(user_id))]
        return [role for role in roles if role.is_enabled]

    # ==================== 解析 ====================

    def resolve_data_scopes(self, principal: Principal) -> Set[DataScopeType]:
        """用户角色声明的数据范围集合，加上启用中的用户级覆盖"""
        scopes = {role.data_scope for role in self._enabled_roles(principal.user_id)}
        override = self.store.override_of_user(principal.user_id)
        if override is not None and override.is_enabled:
            scopes.add(override.data_scope)
        return scopes

    def resolve_dept_filter(self, principal: Principal) -> EffectiveDataScope:
        """计算有效数据范围（缓存优先）

        Raises:
            NotFoundError: 角色或部门不存在
        """
        if self._admin_bypass(principal):
            return UNRESTRICTED

        if self.cache is None:
            return self._compute(principal)

        slot = self.cache.data_scope_slot(principal.user_id)
        cached = self.cache.lookup(slot)
        if cached is not None:
            return cached

        scope = self._compute(principal)
        self.cache.store(slot, scope)
        return scope

    def _compute(self, principal: Principal) -> EffectiveDataScope:
        override = self.store.override_of_user(principal.user_id)
        if override is not None and override.is_enabled:
            logger.debug(
                f"Data scope from user override: user_id={principal.user_id}, "
                f"scope={override.data_scope.name}"
            )
            return self._materialize(override.data_scope, override.custom_dept_ids, principal)

        roles = self._enabled_roles(principal.user_id)
        if not roles:
            return SELF_ONLY

        winner = max((role.data_scope for role in roles), key=lambda s: s.precedence)
        custom_ids: Set[int] = set()
        if winner is DataScopeType.CUSTOM:
            for role in roles:
                if role.data_scope is DataScopeType.CUSTOM:
                    custom_ids |= role.custom_dept_ids

        logger.debug(
            f"Data scope resolved: user_id={principal.user_id}, scope={winner.name}, "
            f"roles={len(roles)}"
        )
        return self._materialize(winner, custom_ids, principal)

    def _materialize(
        self,
        scope: DataScopeType,
        custom_dept_ids: Iterable[int],
        principal: Principal,
    ) -> EffectiveDataScope:
        if scope is DataScopeType.ALL:
            return UNRESTRICTED
        if scope is DataScopeType.SELF:
            return SELF_ONLY
        if scope is DataScopeType.CUSTOM:
            return DeptSet(frozenset(custom_dept_ids))

        dept_id = principal.department_id
        if dept_id is None:
            return DeptSet()
        if scope is DataScopeType.DEPT:
            return DeptSet(frozenset({dept_id}))
        # DEPT_AND_CHILD
        return DeptSet(frozenset({dept_id}) | self.tree.descendant_ids(dept_id))

    # ==================== 检查 ====================

    def has_dept_data_permission(self, principal: Principal, dept_id: int) -> bool:
        """用户是否可以访问指定部门的数据；仅本人范围对任何部门都返回 False"""
        if dept_id is None:
            return False
        return self.resolve_dept_filter(principal).allows_dept(dept_id)

    def accessible_dept_ids(self, principal: Principal) -> Set[int]:
        """用户可访问的全部部门 id，不限制时展开为部门树中的所有部门"""
        scope = self.resolve_dept_filter(principal)
        if isinstance(scope, Unrestricted):
            return self.tree.all_ids()
        if isinstance(scope, SelfOnly):
            return set()
        return set(scope.dept_ids)

    # ==================== 缓存预热 ====================

    def warm_up(self, principals: Iterable[Principal]) -> int:
        """预先解析并缓存一批用户的数据范围，返回成功预热的用户数"""
        warmed = 0
        for principal in principals:
            if self._admin_bypass(principal):
                continue
            try:
                self.resolve_dept_filter(principal)
            except NotFoundError as e:
                logger.warning(f"Data scope warm-up skipped: user_id={principal.user_id}, {e.message}")
                continue
            warmed += 1
        logger.info(f"Data scope cache warmed: users={warmed}")
        return warmed

    # ==================== 缓存失效 ====================

    def invalidate(self, user_id: int) -> None:
        if self.cache is not None:
            self.cache.invalidate_user(user_id)

    def invalidate_all(self) -> None:
        """部门树结构变化后调用"""
        if self.cache is not None:
            self.cache.invalidate_all()


__all__ = [
    "DataScopeResolver",
]
