"""
权限模块 - 角色权限存储

引擎通过 RoleStore 协议读取角色、权限、用户角色关系。协议本身只读，
持久化由外部协作方实现；InMemoryRoleStore 是进程内实现，用于测试和
小规模部署（启动时从数据库加载）。

角色或授权数据变更后，调用方需要显式调用 PermissionEngine.invalidate*，
存储本身不感知缓存。
"""

from dataclasses import replace
from threading import RLock
from typing import Dict, FrozenSet, Iterable, Optional, Protocol, Set, Tuple, runtime_checkable

from yauthz.exceptions import ErrorCode, NotFoundError

from .enums import DataScopeType
from .models import Role, UserDataPermission


@runtime_checkable
class RoleStore(Protocol):
    """角色权限只读存储协议

    未知 role_id 必须抛出 NotFoundError，不能静默忽略。
    """

    def get_role(self, role_id: int) -> Role: ...

    def permissions_of_role(self, role_id: int) -> Set[str]: ...

    def menus_of_role(self, role_id: int) -> Set[int]: ...

    def data_scope_of_role(self, role_id: int) -> Tuple[DataScopeType, FrozenSet[int]]: ...

    def roles_of_user(self, user_id: int) -> Set[int]: ...

    def users_of_role(self, role_id: int) -> Set[int]: ...

    def direct_permissions_of_user(self, user_id: int) -> Optional[Set[str]]: ...

    def override_of_user(self, user_id: int) -> Optional[UserDataPermission]: ...


class InMemoryRoleStore:
    """进程内角色权限存储

    使用示例:
        store = InMemoryRoleStore()
        store.add_role(Role(id=1, key="editor", permission_keys={"doc:edit"}))
        store.assign_roles(100, [1])
        store.permissions_of_role(1)    # {"doc:edit"}
    """

    def __init__(self, roles: Iterable[Role] = ()):
        self._lock = RLock()
        self._roles: Dict[int, Role] = {}
        self._user_roles: Dict[int, Set[int]] = {}
        self._direct: Dict[int, Set[str]] = {}
        self._overrides: Dict[int, UserDataPermission] = {}
        for role in roles:
            self.add_role(role)

    # ==================== 只读查询 ====================

    def get_role(self, role_id: int) -> Role:
        with self._lock:
            role = self._roles.get(role_id)
        if role is None:
            raise NotFoundError("role", role_id, code=ErrorCode.ROLE_NOT_FOUND)
        return role

    def permissions_of_role(self, role_id: int) -> Set[str]:
        return set(self.get_role(role_id).permission_keys)

    def menus_of_role(self, role_id: int) -> Set[int]:
        return set(self.get_role(role_id).menu_ids)

    def data_scope_of_role(self, role_id: int) -> Tuple[DataScopeType, FrozenSet[int]]:
        role = self.get_role(role_id)
        return role.data_scope, role.custom_dept_ids

    def roles_of_user(self, user_id: int) -> Set[int]:
        with self._lock:
            return set(self._user_roles.get(user_id, ()))

    def users_of_role(self, role_id: int) -> Set[int]:
        with self._lock:
            return {uid for uid, rids in self._user_roles.items() if role_id in rids}

    def direct_permissions_of_user(self, user_id: int) -> Optional[Set[str]]:
        with self._lock:
            perms = self._direct.get(user_id)
            return set(perms) if perms is not None else None

    def override_of_user(self, user_id: int) -> Optional[UserDataPermission]:
        with self._lock:
            override = self._overrides.get(user_id)
            if override is None:
                return None
            return replace(override, custom_dept_ids=set(override.custom_dept_ids))

    # ==================== 数据维护 ====================

    def add_role(self, role: Role) -> None:
        """新增或替换角色"""
        with self._lock:
            self._roles[role.id] = role

    def remove_role(self, role_id: int) -> Set[int]:
        """删除角色并解除所有用户关联，返回受影响的用户"""
        with self._lock:
            self.get_role(role_id)
            affected = self.users_of_role(role_id)
            del self._roles[role_id]
            for uid in affected:
                self._user_roles[uid].discard(role_id)
            return affected

    def assign_roles(self, user_id: int, role_ids: Iterable[int]) -> None:
        """设置用户的角色（整体替换）"""
        role_ids = set(role_ids)
        with self._lock:
            for role_id in role_ids:
                self.get_role(role_id)
            self._user_roles[user_id] = role_ids

    def grant_user_permissions(self, user_id: int, permissions: Optional[Iterable[str]]) -> None:
        """设置用户直授权限；None 表示没有直授记录"""
        with self._lock:
            if permissions is None:
                self._direct.pop(user_id, None)
            else:
                self._direct[user_id] = set(permissions)

    def set_user_override(self, override: UserDataPermission) -> None:
        with self._lock:
            self._overrides[override.user_id] = replace(
                override, custom_dept_ids=set(override.custom_dept_ids)
            )

    def clear_user_override(self, user_id: int) -> None:
        with self._lock:
            self._overrides.pop(user_id, None)


__all__ = [
    "RoleStore",
    "InMemoryRoleStore",
]
