"""
权限模块 - 继承与合并策略

继承策略：把多个角色各自的权限集合组合成一个。
合并策略：把继承结果与用户直授权限合并。

策略都是普通函数，按枚举注册；也可以直接传入自定义函数。

使用示例:
    from yauthz.permission.strategies import resolve_inheritance

    combine = resolve_inheritance("override")
    result = combine([(role_a, set_a), (role_b, set_b)])
"""

from typing import Callable, Dict, Sequence, Set, Tuple, Union

from .enums import InheritanceStrategy, MergeStrategy
from .models import PermissionSet, Role

RoleGrant = Tuple[Role, PermissionSet]
InheritanceFunc = Callable[[Sequence[RoleGrant]], PermissionSet]
MergeFunc = Callable[[PermissionSet, Set[str]], PermissionSet]


# ==================== 继承策略 ====================


def additive(grants: Sequence[RoleGrant]) -> PermissionSet:
    """累加：所有角色的权限和菜单取并集"""
    permissions: Set[str] = set()
    menu_ids: Set[int] = set()
    for _, granted in grants:
        permissions |= granted.permissions
        menu_ids |= granted.menu_ids
    return PermissionSet(permissions, menu_ids)


def override(grants: Sequence[RoleGrant]) -> PermissionSet:
    """覆盖：取优先级最高（sort 最小）的角色，其权限集合替换其余角色"""
    if not grants:
        return PermissionSet.empty()
    _, granted = min(grants, key=lambda g: (g[0].sort, g[0].id))
    return granted


def intersection(grants: Sequence[RoleGrant]) -> PermissionSet:
    """交集：只保留所有角色都拥有的权限和菜单"""
    if not grants:
        return PermissionSet.empty()
    permissions = set(grants[0][1].permissions)
    menu_ids = set(grants[0][1].menu_ids)
    for _, granted in grants[1:]:
        permissions &= granted.permissions
        menu_ids &= granted.menu_ids
    return PermissionSet(permissions, menu_ids)


INHERITANCE_STRATEGIES: Dict[InheritanceStrategy, InheritanceFunc] = {
    InheritanceStrategy.ADDITIVE: additive,
    InheritanceStrategy.OVERRIDE: override,
    InheritanceStrategy.INTERSECTION: intersection,
}


# ==================== 合并策略 ====================


def merge_union(role_set: PermissionSet, direct: Set[str]) -> PermissionSet:
    return PermissionSet(role_set.permissions | direct, role_set.menu_ids)


def merge_intersection(role_set: PermissionSet, direct: Set[str]) -> PermissionSet:
    return PermissionSet(role_set.permissions & direct, role_set.menu_ids)


def merge_difference(role_set: PermissionSet, direct: Set[str]) -> PermissionSet:
    """直授条目作为排除列表"""
    return PermissionSet(role_set.permissions - direct, role_set.menu_ids)


MERGE_STRATEGIES: Dict[MergeStrategy, MergeFunc] = {
    MergeStrategy.UNION: merge_union,
    MergeStrategy.INTERSECTION: merge_intersection,
    MergeStrategy.DIFFERENCE: merge_difference,
}


def resolve_inheritance(strategy: Union[str, InheritanceStrategy, InheritanceFunc]) -> InheritanceFunc:
    """把枚举 / 字符串 / 函数统一解析为继承策略函数"""
    if callable(strategy) and not isinstance(strategy, str):
        return strategy
    return INHERITANCE_STRATEGIES[InheritanceStrategy(strategy)]


def resolve_merge(strategy: Union[str, MergeStrategy, MergeFunc]) -> MergeFunc:
    """把枚举 / 字符串 / 函数统一解析为合并策略函数"""
    if callable(strategy) and not isinstance(strategy, str):
        return strategy
    return MERGE_STRATEGIES[MergeStrategy(strategy)]


__all__ = [
    "RoleGrant",
    "InheritanceFunc",
    "MergeFunc",
    "additive",
    "override",
    "intersection",
    "merge_union",
    "merge_intersection",
    "merge_difference",
    "INHERITANCE_STRATEGIES",
    "MERGE_STRATEGIES",
    "resolve_inheritance",
    "resolve_merge",
]
