"""
组织模块 - 部门树

以物化祖级路径（ancestors）维护部门层级：每个部门保存从根到父部门的 id 路径，
子孙查询只需判断路径中是否包含目标 id，与树深度无关。

使用示例:
    from yauthz.organization import Department, DepartmentTree

    tree = DepartmentTree()
    tree.insert(Department(id=1, name="总公司"), parent_id=0)
    tree.insert(Department(id=2, name="研发部"), parent_id=1)
    tree.insert(Department(id=3, name="前端组"), parent_id=2)

    tree.get(3).ancestors            # (1, 2)
    tree.descendant_ids(1)           # {2, 3}
    tree.move(2, 3)                  # CycleError
"""

from dataclasses import replace
from threading import RLock
from typing import Dict, Iterable, List, Optional, Set, Any

from yauthz.exceptions import (
    CycleError,
    DepartmentDisabledError,
    ErrorCode,
    NotFoundError,
    ResourceConflictException,
)
from yauthz.log import get_logger

from .models import Department, ROOT_PARENT_ID, STATUS_DISABLED, STATUS_NORMAL
from .tree_utils import build_tree_list

logger = get_logger("yauthz.organization.tree")


def _sort_key(dept: Department):
    return (dept.level, dept.order_num, dept.id)


class DepartmentTree:
    """部门树

    所有读写都持有同一把可重入锁。部门对象不可变，结构调整时先计算出
    全部新节点，再一次性替换，读者不会看到父部门已移动而子孙路径仍是旧前缀的中间状态。
    """

    def __init__(self, departments: Iterable[Department] = ()):
        self._nodes: Dict[int, Department] = {}
        self._lock = RLock()
        departments = list(departments)
        if departments:
            self.load(departments)

    # ==================== 加载 ====================

    def load(self, departments: Iterable[Department]) -> None:
        """从部门记录批量加载（替换现有数据）

        按 parent_id 逐层重新推导 ancestors，不信任传入的路径值。

        Raises:
            NotFoundError: 引用了不存在的父部门
            CycleError: 记录之间的父子关系成环
            ResourceConflictException: 部门 id 重复
        """
        pending: Dict[int, Department] = {}
        for dept in departments:
            if dept.id in pending:
                raise ResourceConflictException(
                    f"部门已存在: {dept.id}",
                    code=ErrorCode.DUPLICATE_ENTRY,
                    dept_id=dept.id,
                )
            pending[dept.id] = dept
        nodes: Dict[int, Department] = {}

        for dept in pending.values():
            if dept.parent_id != ROOT_PARENT_ID and dept.parent_id not in pending:
                raise NotFoundError("department", dept.parent_id, code=ErrorCode.DEPT_NOT_FOUND)

        # 逐层挂载：每轮挂载父部门已就位的节点
        while pending:
            ready = [
                d for d in pending.values()
                if d.parent_id == ROOT_PARENT_ID or d.parent_id in nodes
            ]
            if not ready:
                stuck = next(iter(pending.values()))
                raise CycleError(stuck.id, stuck.parent_id)
            for dept in ready:
                if dept.parent_id == ROOT_PARENT_ID:
                    ancestors = ()
                else:
                    ancestors = nodes[dept.parent_id].path
                nodes[dept.id] = dept.with_parent(dept.parent_id, ancestors)
                del pending[dept.id]

        with self._lock:
            self._nodes = nodes
        logger.info(f"Department tree loaded: {len(nodes)} departments")

    # ==================== 查询 ====================

    def __len__(self) -> int:
        with self._lock:
            return len(self._nodes)

    def __contains__(self, dept_id: int) -> bool:
        with self._lock:
            return dept_id in self._nodes

    def find(self, dept_id: int) -> Optional[Department]:
        with self._lock:
            return self._nodes.get(dept_id)

    def get(self, dept_id: int) -> Department:
        """获取部门，不存在时抛出 NotFoundError"""
        with self._lock:
            dept = self._nodes.get(dept_id)
        if dept is None:
            raise NotFoundError("department", dept_id, code=ErrorCode.DEPT_NOT_FOUND)
        return dept

    def all_ids(self) -> Set[int]:
        with self._lock:
            return set(self._nodes)

    def all(self) -> List[Department]:
        with self._lock:
            return sorted(self._nodes.values(), key=_sort_key)

    def ancestors_of(self, dept_id: int) -> List[Department]:
        """祖先部门列表，从根到父部门"""
        with self._lock:
            dept = self.get(dept_id)
            return [self._nodes[i] for i in dept.ancestors]

    def children_of(self, dept_id: int) -> List[Department]:
        """直接子部门，按 order_num 排序"""
        with self._lock:
            if dept_id != ROOT_PARENT_ID:
                self.get(dept_id)
            children = [d for d in self._nodes.values() if d.parent_id == dept_id]
        return sorted(children, key=lambda d: (d.order_num, d.id))

    def descendants_of(self, dept_id: int) -> List[Department]:
        """所有子孙部门（不含自身）

        判断依据是子孙的 ancestors 路径包含 dept_id。
        """
        with self._lock:
            self.get(dept_id)
            result = [d for d in self._nodes.values() if dept_id in d.ancestors]
        return sorted(result, key=_sort_key)

    def descendant_ids(self, dept_id: int) -> Set[int]:
        return {d.id for d in self.descendants_of(dept_id)}

    def is_descendant(self, candidate: int, of_node: int) -> bool:
        """candidate 是否为 of_node 的子孙部门（自身不算）"""
        with self._lock:
            return of_node in self.get(candidate).ancestors

    # ==================== 结构调整 ====================

    def insert(self, dept: Department, parent_id: Optional[int] = None) -> Department:
        """新增部门

        Args:
            dept: 部门（ancestors 会被重新计算）
            parent_id: 父部门 id，默认取 dept.parent_id；0 表示根部门

        Raises:
            NotFoundError: 父部门不存在
            DepartmentDisabledError: 父部门已停用
            ResourceConflictException: id 重复或同级名称重复
        """
        if parent_id is None:
            parent_id = dept.parent_id

        with self._lock:
            if dept.id in self._nodes:
                raise ResourceConflictException(
                    f"部门已存在: {dept.id}",
                    code=ErrorCode.DUPLICATE_ENTRY,
                    dept_id=dept.id,
                )
            ancestors = self._child_ancestors(parent_id)
            self._check_name_unique(dept.name, parent_id, exclude_id=dept.id)

            node = dept.with_parent(parent_id, ancestors)
            self._nodes[node.id] = node

        logger.info(f"Department inserted: id={node.id}, parent_id={parent_id}")
        return node

    def move(self, dept_id: int, new_parent_id: int) -> List[int]:
        """调整部门的上级部门

        先做环检测，再一次性改写自身和所有子孙的 ancestors 前缀。

        Returns:
            被改写路径的部门 id 列表（自身在前）

        Raises:
            CycleError: 新上级是自身或自身的子孙部门
            NotFoundError: 部门或新上级不存在
            DepartmentDisabledError: 新上级已停用
        """
        if new_parent_id == dept_id:
            raise CycleError(dept_id, new_parent_id)

        with self._lock:
            node = self.get(dept_id)
            if new_parent_id != ROOT_PARENT_ID and self.is_descendant(new_parent_id, dept_id):
                raise CycleError(dept_id, new_parent_id)
            if new_parent_id == node.parent_id:
                return []

            new_ancestors = self._child_ancestors(new_parent_id)
            self._check_name_unique(node.name, new_parent_id, exclude_id=dept_id)

            old_prefix = node.path
            new_prefix = new_ancestors + (dept_id,)
            cut = len(old_prefix)

            updates: Dict[int, Department] = {
                dept_id: node.with_parent(new_parent_id, new_ancestors)
            }
            for desc in self._nodes.values():
                if desc.ancestors[:cut] == old_prefix:
                    updates[desc.id] = desc.with_parent(
                        desc.parent_id, new_prefix + desc.ancestors[cut:]
                    )
            self._nodes.update(updates)

        logger.info(
            f"Department moved: id={dept_id}, new_parent_id={new_parent_id}, "
            f"rewritten={len(updates)}"
        )
        return [dept_id] + sorted(i for i in updates if i != dept_id)

    def remove(self, dept_id: int) -> Department:
        """删除部门，存在下级部门时拒绝"""
        with self._lock:
            dept = self.get(dept_id)
            if any(d.parent_id == dept_id for d in self._nodes.values()):
                raise ResourceConflictException(
                    "存在下级部门，不允许删除",
                    code=ErrorCode.DEPT_HAS_CHILDREN,
                    dept_id=dept_id,
                )
            del self._nodes[dept_id]
        logger.info(f"Department removed: id={dept_id}")
        return dept

    def set_status(self, dept_id: int, status: str) -> Department:
        """启用 / 停用部门

        停用时如果存在未停用的子孙部门则拒绝。
        """
        if status not in (STATUS_NORMAL, STATUS_DISABLED):
            raise ValueError(f"未知的部门状态: {status}")
        with self._lock:
            dept = self.get(dept_id)
            if status == STATUS_DISABLED and any(
                d.is_enabled for d in self._nodes.values() if dept_id in d.ancestors
            ):
                raise ResourceConflictException(
                    "该部门包含未停用的子部门",
                    code=ErrorCode.DEPT_HAS_CHILDREN,
                    dept_id=dept_id,
                )
            updated = replace(dept, status=status)
            self._nodes[dept_id] = updated
        return updated

    def to_tree(self, root_id: Optional[int] = None) -> List[Dict[str, Any]]:
        """构建嵌套的部门树，root_id 指定时只返回该子树"""
        with self._lock:
            if root_id is None:
                depts = list(self._nodes.values())
            else:
                depts = [self.get(root_id)] + self.descendants_of(root_id)
        return build_tree_list(
            [d.to_dict() for d in depts],
            root_parent_value=ROOT_PARENT_ID,
            sort_key=lambda n: (n["order_num"], n["id"]),
        )

    # ==================== 内部方法 ====================

    def _child_ancestors(self, parent_id: int) -> tuple:
        """新子部门的 ancestors：父部门路径 + 父部门 id（调用方持有锁）"""
        if parent_id == ROOT_PARENT_ID:
            return ()
        parent = self.get(parent_id)
        if not parent.is_enabled:
            raise DepartmentDisabledError(parent_id)
        return parent.path

    def _check_name_unique(self, name: str, parent_id: int, exclude_id: int) -> None:
        if not name:
            return
        for d in self._nodes.values():
            if d.parent_id == parent_id and d.name == name and d.id != exclude_id:
                raise ResourceConflictException(
                    f"部门名称已存在: {name}",
                    code=ErrorCode.DUPLICATE_ENTRY,
                    name=name,
                    parent_id=parent_id,
                )
