"""
组织模块 - 部门模型
"""

from dataclasses import dataclass, field, replace
from typing import Any, Dict, Tuple

# 根部门的 parent_id
ROOT_PARENT_ID = 0

# 部门状态
STATUS_NORMAL = "0"
STATUS_DISABLED = "1"


def parse_ancestors(value: str) -> Tuple[int, ...]:
    """解析持久化的祖级列表字符串

    "0,100,101" -> (100, 101)；"0" 或空串 -> ()
    """
    if not value:
        return ()
    ids = tuple(int(part) for part in value.split(",") if part.strip())
    return tuple(i for i in ids if i != ROOT_PARENT_ID)


@dataclass(frozen=True)
class Department:
    """部门

    ancestors 是从根到父部门的 id 路径（不含自身），根部门为空元组。
    实例不可变，树结构调整时由 DepartmentTree 整体替换。
    """
    id: int
    name: str = ""
    parent_id: int = ROOT_PARENT_ID
    ancestors: Tuple[int, ...] = ()
    status: str = STATUS_NORMAL
    order_num: int = 0
    extra: Dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    @property
    def is_root(self) -> bool:
        return self.parent_id == ROOT_PARENT_ID

    @property
    def is_enabled(self) -> bool:
        return self.status == STATUS_NORMAL

    @property
    def level(self) -> int:
        """层级，根部门为 1"""
        return len(self.ancestors) + 1

    @property
    def path(self) -> Tuple[int, ...]:
        """含自身的完整路径"""
        return self.ancestors + (self.id,)

    @property
    def ancestors_str(self) -> str:
        """持久化格式，如 0,100,101"""
        return ",".join(str(i) for i in (ROOT_PARENT_ID,) + self.ancestors)

    def with_parent(self, parent_id: int, ancestors: Tuple[int, ...]) -> "Department":
        return replace(self, parent_id=parent_id, ancestors=ancestors)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "parent_id": self.parent_id,
            "ancestors": self.ancestors_str,
            "status": self.status,
            "order_num": self.order_num,
            **self.extra,
        }
