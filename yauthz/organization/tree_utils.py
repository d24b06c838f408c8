"""
扁平节点 -> 嵌套树

部门列表接口通常需要 children 嵌套结构，这里只处理字典，不依赖 Department 模型。
"""

from collections import defaultdict
from typing import Any, Callable, Dict, List, Optional


def build_tree_list(
    nodes: List[Dict[str, Any]],
    id_field: str = "id",
    parent_field: str = "parent_id",
    children_field: str = "children",
    root_parent_value: Any = None,
    sort_key: Optional[Callable[[Dict], Any]] = None,
) -> List[Dict[str, Any]]:
    """把扁平节点组装成嵌套树

    父节点等于 root_parent_value 或不在列表里的节点作为根，
    因此传入某个子树的节点时，子树的顶点会成为唯一的根。
    输入字典不会被修改。

    使用示例:
        flat = [
            {"id": 1, "parent_id": 0, "name": "总公司"},
            {"id": 2, "parent_id": 1, "name": "研发部"},
        ]
        build_tree_list(flat, root_parent_value=0)
        # [{"id": 1, ..., "children": [{"id": 2, ..., "children": []}]}]
    """
    known_ids = {node[id_field] for node in nodes}
    by_parent: Dict[Any, List[Dict[str, Any]]] = defaultdict(list)
    roots: List[Dict[str, Any]] = []

    for node in nodes:
        parent = node.get(parent_field)
        if parent == root_parent_value or parent not in known_ids:
            roots.append(node)
        else:
            by_parent[parent].append(node)

    def attach(level: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        if sort_key is not None:
            level = sorted(level, key=sort_key)
        return [
            {**node, children_field: attach(by_parent.get(node[id_field], []))}
            for node in level
        ]

    return attach(roots)
