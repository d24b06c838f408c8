"""
权限模块 - 枚举定义

提供权限模块相关的枚举类型
"""

from enum import Enum
from typing import Union


# 超级管理员的通配权限标识
ALL_PERMISSION = "*:*:*"

# 角色 / 数据权限状态
STATUS_NORMAL = "0"
STATUS_DISABLED = "1"


class DataScopeType(str, Enum):
    """数据范围类型

    值与持久化的 data_scope 字段编码一致。
    """
    ALL = "1"               # 全部数据
    CUSTOM = "2"            # 自定义部门
    DEPT = "3"              # 本部门数据
    DEPT_AND_CHILD = "4"    # 本部门及下级部门
    SELF = "5"              # 仅本人数据

    @classmethod
    def parse(cls, value: Union[str, "DataScopeType"]) -> "DataScopeType":
        """按编码（"1"）或名称（"DEPT_AND_CHILD"）解析

        Raises:
            ValueError: 无法识别的取值
        """
        if isinstance(value, cls):
            return value
        text = str(value).strip()
        try:
            return cls(text)
        except ValueError:
            pass
        try:
            return cls[text.upper()]
        except KeyError:
            raise ValueError(f"未知的数据范围: {value!r}") from None

    @property
    def precedence(self) -> int:
        """宽松程度，数值越大越宽松"""
        return _PRECEDENCE[self]

    @property
    def need_dept_filter(self) -> bool:
        """是否需要按部门过滤"""
        return self in (DataScopeType.CUSTOM, DataScopeType.DEPT, DataScopeType.DEPT_AND_CHILD)

    @property
    def need_user_filter(self) -> bool:
        """是否需要按创建人过滤"""
        return self is DataScopeType.SELF

    @property
    def include_child_dept(self) -> bool:
        """是否包含下级部门"""
        return self is DataScopeType.DEPT_AND_CHILD


# ALL > CUSTOM > DEPT_AND_CHILD > DEPT > SELF
_PRECEDENCE = {
    DataScopeType.SELF: 0,
    DataScopeType.DEPT: 1,
    DataScopeType.DEPT_AND_CHILD: 2,
    DataScopeType.CUSTOM: 3,
    DataScopeType.ALL: 4,
}


class InheritanceStrategy(str, Enum):
    """多角色权限集合的组合策略"""
    ADDITIVE = "additive"          # 累加：所有角色权限取并集
    OVERRIDE = "override"          # 覆盖：优先级最高的角色权限替换其余
    INTERSECTION = "intersection"  # 交集：只保留所有角色共有的权限


class MergeStrategy(str, Enum):
    """角色权限与用户直授权限的合并策略"""
    UNION = "union"                # 并集
    INTERSECTION = "intersection"  # 交集
    DIFFERENCE = "difference"      # 差集：直授条目作为排除列表


__all__ = [
    "ALL_PERMISSION",
    "STATUS_NORMAL",
    "STATUS_DISABLED",
    "DataScopeType",
    "InheritanceStrategy",
    "MergeStrategy",
]
