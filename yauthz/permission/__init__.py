"""权限模块

提供角色权限存储、权限继承引擎、数据范围解析和 SQL 数据过滤。

使用示例:
    from yauthz.permission import (
        InMemoryRoleStore, PermissionEngine, DataScopeResolver, Principal, Role,
    )

    engine = PermissionEngine(store)
    resolver = DataScopeResolver(store, tree, cache=engine.cache)
"""

from .enums import (
    ALL_PERMISSION,
    DataScopeType,
    InheritanceStrategy,
    MergeStrategy,
)
from .models import (
    Role,
    UserDataPermission,
    Principal,
    PermissionSet,
    EffectiveDataScope,
    Unrestricted,
    SelfOnly,
    DeptSet,
    UNRESTRICTED,
    SELF_ONLY,
)
from .store import RoleStore, InMemoryRoleStore
from .cache import PermissionCache
from .engine import PermissionEngine
from .data_scope import DataScopeResolver
from .filters import build_data_scope_criteria, apply_data_scope

__all__ = [
    # 枚举
    "ALL_PERMISSION",
    "DataScopeType",
    "InheritanceStrategy",
    "MergeStrategy",
    # 模型
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
    # 存储 / 缓存
    "RoleStore",
    "InMemoryRoleStore",
    "PermissionCache",
    # 引擎
    "PermissionEngine",
    "DataScopeResolver",
    # SQL 过滤
    "build_data_scope_criteria",
    "apply_data_scope",
]
