"""
权限模块 - 数据范围解析测试

优先级（宽松者胜出）、自定义部门并集、用户级覆盖、部门树联动。
"""

import pytest

from yauthz.config import PermissionSettings
from yauthz.exceptions import NotFoundError
from yauthz.permission import (
    DataScopeResolver,
    DataScopeType,
    DeptSet,
    PermissionEngine,
    Principal,
    Role,
    SELF_ONLY,
    UNRESTRICTED,
    UserDataPermission,
)

from tests.helpers import (
    ROLE_AUDITOR,
    ROLE_DISABLED,
    ROLE_EDITOR,
    ROLE_SALES_MANAGER,
    ROLE_VIEWER,
)


class TestDataScopeResolution:
    """数据范围计算测试"""

    @pytest.fixture
    def resolver(self, role_store, dept_tree):
        return DataScopeResolver(role_store, dept_tree)

    def test_no_roles_is_self_only(self, resolver):
        """测试没有角色时仅本人"""
        assert resolver.resolve_dept_filter(Principal(user_id=100, department_id=2)) is SELF_ONLY

    def test_self_role(self, resolver, role_store):
        role_store.assign_roles(100, [ROLE_VIEWER])

        assert resolver.resolve_dept_filter(Principal(user_id=100, department_id=2)) == SELF_ONLY

    def test_dept_role(self, resolver, role_store):
        """测试本部门"""
        role_store.assign_roles(100, [ROLE_EDITOR])

        scope = resolver.resolve_dept_filter(Principal(user_id=100, department_id=2))
        assert scope == DeptSet({2})

    def test_dept_and_child_role(self, resolver, role_store):
        """测试本部门及下级"""
        role_store.assign_roles(100, [ROLE_SALES_MANAGER])

        scope = resolver.resolve_dept_filter(Principal(user_id=100, department_id=2))
        assert scope == DeptSet({2, 4, 5, 7})

    def test_most_permissive_wins(self, resolver, role_store):
        """测试多个角色时取最宽松的范围"""
        role_store.assign_roles(100, [ROLE_VIEWER, ROLE_EDITOR, ROLE_SALES_MANAGER])

        scope = resolver.resolve_dept_filter(Principal(user_id=100, department_id=3))
        assert scope == DeptSet({3, 6})

    def test_custom_beats_dept_and_child(self, resolver, role_store):
        """测试自定义部门优先于本部门及下级"""
        role_store.assign_roles(100, [ROLE_SALES_MANAGER, ROLE_AUDITOR])

        scope = resolver.resolve_dept_filter(Principal(user_id=100, department_id=2))
        assert scope == DeptSet({3, 6})

    def test_multiple_custom_roles_union(self, resolver, role_store):
        """测试多个自定义角色的部门取并集"""
        role_store.add_role(Role(id=6, key="storage_auditor", data_scope="2", custom_dept_ids={7}))
        role_store.assign_roles(100, [ROLE_AUDITOR, 6])

        scope = resolver.resolve_dept_filter(Principal(user_id=100, department_id=2))
        assert scope == DeptSet({3, 6, 7})

    def test_all_role_is_unrestricted(self, resolver, role_store):
        """测试全部数据"""
        role_store.add_role(Role(id=6, key="boss", data_scope=DataScopeType.ALL))
        role_store.assign_roles(100, [ROLE_EDITOR, 6])

        assert resolver.resolve_dept_filter(Principal(user_id=100, department_id=2)) is UNRESTRICTED

    def test_disabled_role_ignored(self, resolver, role_store):
        """测试停用角色的数据范围不参与计算"""
        role_store.assign_roles(100, [ROLE_EDITOR, ROLE_DISABLED])

        assert resolver.resolve_dept_filter(Principal(user_id=100, department_id=2)) == DeptSet({2})

    def test_dept_scope_without_department(self, resolver, role_store):
        """测试用户没有所属部门时本部门范围为空集"""
        role_store.assign_roles(100, [ROLE_SALES_MANAGER])

        scope = resolver.resolve_dept_filter(Principal(user_id=100))
        assert scope == DeptSet()
        assert scope.allows_dept(2) is False

    def test_unknown_department(self, resolver, role_store):
        """测试本部门及下级范围引用不存在的部门"""
        role_store.assign_roles(100, [ROLE_SALES_MANAGER])

        with pytest.raises(NotFoundError):
            resolver.resolve_dept_filter(Principal(user_id=100, department_id=99))

    def test_resolve_data_scopes(self, resolver, role_store):
        """测试列出用户声明的数据范围"""
        role_store.assign_roles(100, [ROLE_VIEWER, ROLE_EDITOR, ROLE_DISABLED])

        scopes = resolver.resolve_data_scopes(Principal(user_id=100))
        assert scopes == {DataScopeType.SELF, DataScopeType.DEPT}


class TestDataScopeOverride:
    """用户级覆盖测试"""

    @pytest.fixture
    def resolver(self, role_store, dept_tree):
        role_store.assign_roles(100, [ROLE_SALES_MANAGER])
        return DataScopeResolver(role_store, dept_tree)

    def test_override_replaces_roles(self, resolver, role_store):
        """测试启用的覆盖完全替代角色推导"""
        role_store.set_user_override(UserDataPermission(user_id=100, data_scope=DataScopeType.SELF))

        assert resolver.resolve_dept_filter(Principal(user_id=100, department_id=2)) is SELF_ONLY

    def test_override_custom(self, resolver, role_store):
        role_store.set_user_override(
            UserDataPermission(user_id=100, data_scope="2", custom_dept_ids={6})
        )

        assert resolver.resolve_dept_filter(Principal(user_id=100, department_id=2)) == DeptSet({6})

    def test_disabled_override_ignored(self, resolver, role_store):
        """测试停用的覆盖不生效"""
        role_store.set_user_override(
            UserDataPermission(user_id=100, data_scope=DataScopeType.SELF, status="1")
        )

        scope = resolver.resolve_dept_filter(Principal(user_id=100, department_id=2))
        assert scope == DeptSet({2, 4, 5, 7})

    def test_override_listed_in_scopes(self, resolver, role_store):
        role_store.set_user_override(UserDataPermission(user_id=100, data_scope="1"))

        scopes = resolver.resolve_data_scopes(Principal(user_id=100))
        assert DataScopeType.ALL in scopes


class TestDataScopeAdminAndChecks:
    """管理员旁路与检查方法测试"""

    def test_admin_unrestricted(self, role_store, dept_tree):
        resolver = DataScopeResolver(role_store, dept_tree)

        assert resolver.resolve_dept_filter(Principal(user_id=1, is_admin=True)) is UNRESTRICTED

    def test_admin_bypass_disabled(self, role_store, dept_tree):
        resolver = DataScopeResolver(
            role_store, dept_tree, settings=PermissionSettings(admin_auto_inherit_all=False)
        )

        assert resolver.resolve_dept_filter(Principal(user_id=1, is_admin=True)) is SELF_ONLY

    def test_has_dept_data_permission(self, role_store, dept_tree):
        """测试部门访问判断"""
        role_store.assign_roles(100, [ROLE_SALES_MANAGER])
        resolver = DataScopeResolver(role_store, dept_tree)
        principal = Principal(user_id=100, department_id=2)

        assert resolver.has_dept_data_permission(principal, 7) is True
        assert resolver.has_dept_data_permission(principal, 3) is False
        assert resolver.has_dept_data_permission(principal, None) is False

    def test_self_only_has_no_dept_access(self, role_store, dept_tree):
        role_store.assign_roles(100, [ROLE_VIEWER])
        resolver = DataScopeResolver(role_store, dept_tree)

        assert resolver.has_dept_data_permission(Principal(user_id=100, department_id=2), 2) is False
        assert resolver.accessible_dept_ids(Principal(user_id=100, department_id=2)) == set()

    def test_accessible_dept_ids_unrestricted(self, role_store, dept_tree):
        """测试不限制时展开为全部部门"""
        resolver = DataScopeResolver(role_store, dept_tree)

        ids = resolver.accessible_dept_ids(Principal(user_id=1, is_admin=True))
        assert ids == {1, 2, 3, 4, 5, 6, 7}


class TestDataScopeCache:
    """数据范围缓存测试"""

    @pytest.fixture
    def engine(self, role_store, permission_cache):
        return PermissionEngine(role_store, cache=permission_cache)

    @pytest.fixture
    def resolver(self, role_store, dept_tree, permission_cache):
        role_store.assign_roles(100, [ROLE_SALES_MANAGER])
        return DataScopeResolver(role_store, dept_tree, cache=permission_cache)

    def test_engine_invalidate_clears_scope(self, engine, resolver, role_store):
        """测试与引擎共用缓存时引擎失效同时清除数据范围"""
        principal = Principal(user_id=100, department_id=2)
        resolver.resolve_dept_filter(principal)

        role_store.assign_roles(100, [ROLE_EDITOR])
        assert resolver.resolve_dept_filter(principal) == DeptSet({2, 4, 5, 7})

        engine.invalidate(100)
        assert resolver.resolve_dept_filter(principal) == DeptSet({2})

    def test_tree_move_then_invalidate_all(self, resolver, dept_tree):
        """测试部门调整后全部失效，子孙展开反映新结构"""
        principal = Principal(user_id=100, department_id=2)
        assert resolver.resolve_dept_filter(principal) == DeptSet({2, 4, 5, 7})

        dept_tree.move(5, 3)
        resolver.invalidate_all()

        assert resolver.resolve_dept_filter(principal) == DeptSet({2, 4})

    def test_invalidate_single_user(self, resolver, role_store):
        principal = Principal(user_id=100, department_id=2)
        resolver.resolve_dept_filter(principal)

        role_store.assign_roles(100, [ROLE_VIEWER])
        resolver.invalidate(100)

        assert resolver.resolve_dept_filter(principal) is SELF_ONLY

    def test_invalidate_during_resolution(self, resolver, role_store, monkeypatch):
        """测试解析进行中发生的失效不会被旧结果覆盖"""
        principal = Principal(user_id=100, department_id=2)
        read_roles = role_store.roles_of_user
        changed = []

        def roles_then_reassign(user_id):
            roles = read_roles(user_id)
            if not changed:
                changed.append(user_id)
                role_store.assign_roles(100, [ROLE_AUDITOR])
                resolver.invalidate(100)
            return roles

        monkeypatch.setattr(role_store, "roles_of_user", roles_then_reassign)

        assert resolver.resolve_dept_filter(principal) == DeptSet({2, 4, 5, 7})
        assert resolver.resolve_dept_filter(principal) == DeptSet({3, 6})

    def test_warm_up(self, resolver, permission_cache, role_store):
        """测试预热后直接命中缓存"""
        role_store.assign_roles(200, [ROLE_EDITOR])
        principals = [
            Principal(user_id=100, department_id=2),
            Principal(user_id=200, department_id=3),
            Principal(user_id=1, is_admin=True),
        ]

        assert resolver.warm_up(principals) == 2
        assert permission_cache.get_data_scope(100) == DeptSet({2, 4, 5, 7})
        assert permission_cache.get_data_scope(200) == DeptSet({3})
