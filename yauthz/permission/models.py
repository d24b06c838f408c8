"""
权限模块 - 数据模型

引擎的输入（角色、用户数据权限覆盖、主体）和输出（权限集合、有效数据范围）。
输入模型对引擎只读；输出模型不可变，可安全放入缓存并跨线程共享。
"""

from dataclasses import dataclass, field
from typing import FrozenSet, Iterable, Optional, Set

from .enums import ALL_PERMISSION, DataScopeType, STATUS_DISABLED, STATUS_NORMAL


def _frozen(values: Optional[Iterable]) -> frozenset:
    return frozenset(values or ())


# ==================== 输入模型 ====================


@dataclass(frozen=True)
class Role:
    """角色

    custom_dept_ids 仅在 data_scope 为 CUSTOM 时有意义。
    sort 越小优先级越高（OVERRIDE 策略使用）。
    """
    id: int
    key: str
    name: str = ""
    data_scope: DataScopeType = DataScopeType.SELF
    custom_dept_ids: FrozenSet[int] = frozenset()
    permission_keys: FrozenSet[str] = frozenset()
    menu_ids: FrozenSet[int] = frozenset()
    status: str = STATUS_NORMAL
    sort: int = 0

    def __post_init__(self):
        object.__setattr__(self, "data_scope", DataScopeType.parse(self.data_scope))
        object.__setattr__(self, "custom_dept_ids", _frozen(self.custom_dept_ids))
        object.__setattr__(self, "permission_keys", _frozen(self.permission_keys))
        object.__setattr__(self, "menu_ids", _frozen(self.menu_ids))

    @property
    def is_enabled(self) -> bool:
        return self.status == STATUS_NORMAL


@dataclass
class UserDataPermission:
    """用户级数据权限覆盖

    启用时完全替代角色推导出的数据范围。
    """
    user_id: int
    data_scope: DataScopeType
    custom_dept_ids: Set[int] = field(default_factory=set)
    status: str = STATUS_NORMAL
    remark: str = ""

    def __post_init__(self):
        self.data_scope = DataScopeType.parse(self.data_scope)
        self.custom_dept_ids = set(self.custom_dept_ids or ())

    @property
    def is_enabled(self) -> bool:
        return self.status == STATUS_NORMAL

    def enable(self) -> None:
        self.status = STATUS_NORMAL

    def disable(self) -> None:
        self.status = STATUS_DISABLED


@dataclass(frozen=True)
class Principal:
    """已认证的主体

    由调用方构造并按值传入每次计算，引擎不持有它。
    """
    user_id: int
    department_id: Optional[int] = None
    role_ids: FrozenSet[int] = frozenset()
    is_admin: bool = False
    user_name: str = ""

    def __post_init__(self):
        object.__setattr__(self, "role_ids", _frozen(self.role_ids))


# ==================== 输出模型 ====================


@dataclass(frozen=True)
class PermissionSet:
    """权限集合：权限标识 + 菜单 id

    包含通配权限 "*:*:*" 时，任何权限和菜单检查都通过。
    """
    permissions: FrozenSet[str] = frozenset()
    menu_ids: FrozenSet[int] = frozenset()

    def __post_init__(self):
        object.__setattr__(self, "permissions", _frozen(self.permissions))
        object.__setattr__(self, "menu_ids", _frozen(self.menu_ids))

    @classmethod
    def empty(cls) -> "PermissionSet":
        return cls()

    @classmethod
    def universal(cls) -> "PermissionSet":
        return cls(permissions=frozenset({ALL_PERMISSION}))

    @property
    def is_universal(self) -> bool:
        return ALL_PERMISSION in self.permissions

    def has_permission(self, permission: str) -> bool:
        if not permission:
            return False
        return self.is_universal or permission in self.permissions

    def has_menu(self, menu_id: int) -> bool:
        if menu_id is None:
            return False
        return self.is_universal or menu_id in self.menu_ids

    def has_any(self, *permissions: str) -> bool:
        return any(self.has_permission(p) for p in permissions)

    def has_all(self, *permissions: str) -> bool:
        return bool(permissions) and all(self.has_permission(p) for p in permissions)


class EffectiveDataScope:
    """有效数据范围：Unrestricted / SelfOnly / DeptSet 三选一

    每次计算得出（或取自缓存），从不作为数据源持久化。
    """

    def allows_dept(self, dept_id: int) -> bool:
        raise NotImplementedError


@dataclass(frozen=True)
class Unrestricted(EffectiveDataScope):
    """不限制"""

    def allows_dept(self, dept_id: int) -> bool:
        return True


@dataclass(frozen=True)
class SelfOnly(EffectiveDataScope):
    """仅本人数据，任何按部门的判断都不通过"""

    def allows_dept(self, dept_id: int) -> bool:
        return False


@dataclass(frozen=True)
class DeptSet(EffectiveDataScope):
    """限定部门集合"""
    dept_ids: FrozenSet[int] = frozenset()

    def __post_init__(self):
        object.__setattr__(self, "dept_ids", _frozen(self.dept_ids))

    def allows_dept(self, dept_id: int) -> bool:
        return dept_id in self.dept_ids


UNRESTRICTED = Unrestricted()
SELF_ONLY = SelfOnly()


__all__ = [
    "Role",
    "UserDataPermission",
    "Principal",
    "PermissionSet",
    "EffectiveDataScope",
    "Unrestricted",
    "SelfOnly",
    "DeptSet",
    "UNRESTRICTED",
    "SELF_ONLY",
]
