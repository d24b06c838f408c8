"""组织模块

提供部门模型和基于物化祖级路径的部门树。
"""

from .models import (
    Department,
    ROOT_PARENT_ID,
    STATUS_NORMAL,
    STATUS_DISABLED,
    parse_ancestors,
)
from .tree import DepartmentTree
from .tree_utils import build_tree_list

__all__ = [
    "Department",
    "ROOT_PARENT_ID",
    "STATUS_NORMAL",
    "STATUS_DISABLED",
    "parse_ancestors",
    "DepartmentTree",
    "build_tree_list",
]
