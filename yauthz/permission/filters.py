"""
权限模块 - SQL 数据范围过滤

把有效数据范围翻译为 SQLAlchemy 查询条件。数据范围由调用方显式传入，
不依赖线程上下文。

使用示例:
    from sqlalchemy import select
    from yauthz.permission.filters import apply_data_scope

    scope = resolver.resolve_dept_filter(principal)
    stmt = apply_data_scope(
        select(Order),
        scope,
        principal,
        dept_column=Order.dept_id,
        user_column=Order.create_by,
    )
"""

from typing import Optional

from sqlalchemy import ColumnElement, Select, false, true

from .models import DeptSet, EffectiveDataScope, Principal, SelfOnly, Unrestricted


def build_data_scope_criteria(
    scope: EffectiveDataScope,
    principal: Principal,
    dept_column=None,
    user_column=None,
) -> ColumnElement[bool]:
    """构建数据范围过滤条件

    Args:
        scope: 有效数据范围
        principal: 当前主体（仅本人范围用 user_id 过滤）
        dept_column: 部门字段，如 Order.dept_id
        user_column: 数据归属人字段，如 Order.create_by

    Returns:
        - Unrestricted: true()
        - DeptSet: dept_column IN (...)，集合为空或没有部门字段时为 false()
        - SelfOnly: user_column = user_id，没有归属人字段时为 false()
    """
    if isinstance(scope, Unrestricted):
        return true()
    if isinstance(scope, SelfOnly):
        if user_column is None:
            return false()
        return user_column == principal.user_id
    if isinstance(scope, DeptSet):
        if dept_column is None or not scope.dept_ids:
            return false()
        return dept_column.in_(sorted(scope.dept_ids))
    raise TypeError(f"未知的数据范围类型: {type(scope).__name__}")


def apply_data_scope(
    stmt: Select,
    scope: EffectiveDataScope,
    principal: Principal,
    dept_column=None,
    user_column=None,
) -> Select:
    """在查询上追加数据范围条件；不限制时原样返回"""
    if isinstance(scope, Unrestricted):
        return stmt
    return stmt.where(
        build_data_scope_criteria(scope, principal, dept_column, user_column)
    )


__all__ = [
    "build_data_scope_criteria",
    "apply_data_scope",
]
