"""
权限模块 - 角色权限存储测试
"""

import pytest

from yauthz.exceptions import ErrorCode, NotFoundError
from yauthz.permission import (
    DataScopeType,
    InMemoryRoleStore,
    Role,
    RoleStore,
    UserDataPermission,
)

from tests.helpers import ROLE_AUDITOR, ROLE_EDITOR, ROLE_VIEWER


class TestInMemoryRoleStore:
    """进程内存储测试"""

    def test_implements_protocol(self, role_store):
        """测试满足 RoleStore 协议"""
        assert isinstance(role_store, RoleStore)

    def test_role_queries(self, role_store):
        """测试角色相关查询"""
        assert role_store.permissions_of_role(ROLE_EDITOR) == {"doc:view", "doc:edit"}
        assert role_store.menus_of_role(ROLE_EDITOR) == {10, 11}
        assert role_store.data_scope_of_role(ROLE_AUDITOR) == (
            DataScopeType.CUSTOM, frozenset({3, 6})
        )

    def test_unknown_role(self, role_store):
        """测试未知角色抛出 NotFoundError"""
        with pytest.raises(NotFoundError) as exc_info:
            role_store.get_role(999)

        assert exc_info.value.code == ErrorCode.ROLE_NOT_FOUND

    def test_assign_roles(self, role_store):
        """测试分配角色与反查用户"""
        role_store.assign_roles(100, [ROLE_EDITOR, ROLE_VIEWER])
        role_store.assign_roles(200, [ROLE_EDITOR])

        assert role_store.roles_of_user(100) == {ROLE_EDITOR, ROLE_VIEWER}
        assert role_store.users_of_role(ROLE_EDITOR) == {100, 200}
        assert role_store.roles_of_user(300) == set()

    def test_assign_unknown_role(self, role_store):
        """测试分配不存在的角色"""
        with pytest.raises(NotFoundError):
            role_store.assign_roles(100, [999])
        assert role_store.roles_of_user(100) == set()

    def test_remove_role(self, role_store):
        """测试删除角色解除用户关联"""
        role_store.assign_roles(100, [ROLE_EDITOR, ROLE_VIEWER])

        affected = role_store.remove_role(ROLE_EDITOR)

        assert affected == {100}
        assert role_store.roles_of_user(100) == {ROLE_VIEWER}

    def test_direct_permissions(self, role_store):
        """测试直授权限：None 表示没有记录，空集合表示有记录但为空"""
        assert role_store.direct_permissions_of_user(100) is None

        role_store.grant_user_permissions(100, [])
        assert role_store.direct_permissions_of_user(100) == set()

        role_store.grant_user_permissions(100, ["x:y"])
        assert role_store.direct_permissions_of_user(100) == {"x:y"}

        role_store.grant_user_permissions(100, None)
        assert role_store.direct_permissions_of_user(100) is None

    def test_override_is_copied(self, role_store):
        """测试返回的覆盖记录是副本"""
        role_store.set_user_override(
            UserDataPermission(user_id=100, data_scope=DataScopeType.CUSTOM, custom_dept_ids={1})
        )

        override = role_store.override_of_user(100)
        override.custom_dept_ids.add(2)
        override.disable()

        fresh = role_store.override_of_user(100)
        assert fresh.custom_dept_ids == {1}
        assert fresh.is_enabled is True

    def test_clear_override(self, role_store):
        role_store.set_user_override(UserDataPermission(user_id=100, data_scope="1"))
        role_store.clear_user_override(100)

        assert role_store.override_of_user(100) is None

    def test_replace_role(self):
        """测试 add_role 替换已有角色"""
        store = InMemoryRoleStore([Role(id=1, key="a", permission_keys={"x"})])
        store.add_role(Role(id=1, key="a", permission_keys={"y"}))

        assert store.permissions_of_role(1) == {"y"}
