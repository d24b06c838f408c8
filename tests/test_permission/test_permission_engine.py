"""
权限模块 - 权限继承引擎测试

继承策略、合并策略、超级管理员旁路、缓存与失效。
"""

import threading
from unittest.mock import MagicMock

import pytest

from yauthz.cache import CacheBackend
from yauthz.config import PermissionSettings
from yauthz.exceptions import CacheUnavailableError, NotFoundError
from yauthz.permission import (
    ALL_PERMISSION,
    InheritanceStrategy,
    MergeStrategy,
    PermissionCache,
    PermissionEngine,
    PermissionSet,
    Principal,
    Role,
)
from yauthz.permission.strategies import (
    additive,
    intersection,
    merge_difference,
    merge_intersection,
    merge_union,
    override,
    resolve_inheritance,
    resolve_merge,
)

from tests.helpers import (
    ROLE_AUDITOR,
    ROLE_DISABLED,
    ROLE_EDITOR,
    ROLE_VIEWER,
)


def _grant(role_id, sort, perms, menus=()):
    return Role(id=role_id, key=f"r{role_id}", sort=sort), PermissionSet(perms, menus)


class TestStrategies:
    """策略函数测试"""

    def test_additive(self):
        """测试累加取并集"""
        result = additive([_grant(1, 0, {"a"}, {1}), _grant(2, 0, {"b"}, {2})])

        assert result.permissions == {"a", "b"}
        assert result.menu_ids == {1, 2}

    def test_override_lowest_sort_wins(self):
        """测试覆盖取 sort 最小的角色"""
        result = override([_grant(1, 5, {"a"}), _grant(2, 1, {"b"})])
        assert result.permissions == {"b"}

    def test_override_tie_breaks_by_id(self):
        """测试 sort 相同时取 id 较小者"""
        result = override([_grant(2, 1, {"b"}), _grant(1, 1, {"a"})])
        assert result.permissions == {"a"}

    def test_intersection(self):
        """测试交集"""
        result = intersection([_grant(1, 0, {"a", "b"}, {1, 2}), _grant(2, 0, {"b", "c"}, {2})])

        assert result.permissions == {"b"}
        assert result.menu_ids == {2}

    def test_empty_grants(self):
        """测试没有角色时结果为空"""
        assert additive([]) == PermissionSet.empty()
        assert override([]) == PermissionSet.empty()
        assert intersection([]) == PermissionSet.empty()

    def test_merge_functions(self):
        """测试三种合并方式"""
        role_set = PermissionSet({"a", "b"}, {1})

        assert merge_union(role_set, {"c"}).permissions == {"a", "b", "c"}
        assert merge_intersection(role_set, {"b", "c"}).permissions == {"b"}
        assert merge_difference(role_set, {"b"}).permissions == {"a"}
        # 菜单不受直授权限影响
        assert merge_difference(role_set, {"b"}).menu_ids == {1}

    def test_resolve(self):
        """测试按枚举、字符串、函数解析策略"""
        assert resolve_inheritance("override") is override
        assert resolve_inheritance(InheritanceStrategy.INTERSECTION) is intersection
        assert resolve_merge(MergeStrategy.DIFFERENCE) is merge_difference

        custom = lambda grants: PermissionSet({"custom"})  # noqa: E731
        assert resolve_inheritance(custom) is custom

    def test_resolve_unknown(self):
        with pytest.raises(ValueError):
            resolve_inheritance("random")


class TestPermissionEngineInheritance:
    """继承与合并测试"""

    @pytest.fixture
    def principal(self, role_store):
        role_store.assign_roles(100, [ROLE_EDITOR, ROLE_VIEWER])
        return Principal(user_id=100, department_id=2)

    def test_additive_default(self, role_store, principal):
        """测试默认累加策略"""
        engine = PermissionEngine(role_store)

        granted = engine.calculate_permission_set(principal)

        assert granted.permissions == {"doc:view", "doc:edit"}
        assert granted.menu_ids == {10, 11}
        assert engine.calculate_permissions(principal) == frozenset({"doc:view", "doc:edit"})

    def test_override(self, role_store, principal):
        """测试覆盖策略取优先级最高的角色"""
        role_store.assign_roles(100, [ROLE_EDITOR, ROLE_AUDITOR])
        engine = PermissionEngine(role_store, inheritance_strategy="override")

        assert engine.calculate_permissions(principal) == {"doc:view", "audit:read"}

    def test_intersection(self, role_store, principal):
        """测试交集策略"""
        engine = PermissionEngine(
            role_store, settings=PermissionSettings(inheritance_strategy="intersection")
        )

        granted = engine.calculate_permission_set(principal)

        assert granted.permissions == {"doc:view"}
        assert granted.menu_ids == {10}

    @pytest.mark.parametrize(
        "merge_strategy, expected",
        [
            ("union", {"doc:view", "doc:edit", "report:export"}),
            ("intersection", {"doc:edit"}),
            ("difference", {"doc:view"}),
        ],
    )
    def test_merge_direct_permissions(self, role_store, principal, merge_strategy, expected):
        """测试直授权限合并"""
        role_store.grant_user_permissions(100, {"report:export", "doc:edit"})
        engine = PermissionEngine(role_store, merge_strategy=merge_strategy)

        assert engine.calculate_permissions(principal) == expected

    def test_no_direct_record_skips_merge(self, role_store, principal):
        """测试没有直授记录时交集合并不会清空权限"""
        engine = PermissionEngine(role_store, merge_strategy="intersection")

        assert engine.calculate_permissions(principal) == {"doc:view", "doc:edit"}

    def test_disabled_inheritance_is_plain_union(self, role_store, principal):
        """测试关闭继承时只取角色并集且忽略直授权限"""
        role_store.grant_user_permissions(100, {"report:export"})
        engine = PermissionEngine(
            role_store,
            settings=PermissionSettings(enabled=False, inheritance_strategy="intersection"),
        )

        assert engine.calculate_permissions(principal) == {"doc:view", "doc:edit"}

    def test_disabled_role_ignored(self, role_store, principal):
        """测试停用角色不参与计算"""
        role_store.assign_roles(100, [ROLE_VIEWER, ROLE_DISABLED])
        engine = PermissionEngine(role_store)

        assert engine.calculate_permissions(principal) == {"doc:view"}
        assert engine.role_keys_of(principal) == {"viewer"}

    def test_no_roles(self, role_store):
        """测试没有角色的用户"""
        engine = PermissionEngine(role_store)

        assert engine.calculate_permissions(Principal(user_id=999)) == frozenset()

    def test_unknown_role_raises(self):
        """测试用户关联了不存在的角色"""
        store = MagicMock()
        store.roles_of_user.return_value = {42}
        store.get_role.side_effect = NotFoundError("role", 42)
        engine = PermissionEngine(store, use_cache=False)

        with pytest.raises(NotFoundError):
            engine.calculate_permissions(Principal(user_id=1))


class TestPermissionEngineAdmin:
    """超级管理员旁路测试"""

    def test_admin_gets_universal(self, role_store):
        """测试管理员获得通配权限"""
        engine = PermissionEngine(role_store)
        admin = Principal(user_id=1, is_admin=True)

        assert engine.calculate_permissions(admin) == {ALL_PERMISSION}
        assert engine.has_permission(admin, "anything:delete") is True
        assert engine.has_menu_permission(admin, 12345) is True
        assert "admin" in engine.role_keys_of(admin)

    def test_admin_bypass_disabled(self, role_store):
        """测试关闭管理员自动继承后按角色计算"""
        role_store.assign_roles(1, [ROLE_VIEWER])
        engine = PermissionEngine(
            role_store, settings=PermissionSettings(admin_auto_inherit_all=False)
        )
        admin = Principal(user_id=1, is_admin=True)

        assert engine.calculate_permissions(admin) == {"doc:view"}
        assert engine.has_permission(admin, "doc:edit") is False


class TestPermissionEngineChecks:
    """权限检查测试"""

    @pytest.fixture
    def engine(self, role_store):
        role_store.assign_roles(100, [ROLE_EDITOR])
        return PermissionEngine(role_store)

    @pytest.fixture
    def principal(self):
        return Principal(user_id=100, department_id=2)

    def test_has_permission(self, engine, principal):
        assert engine.has_permission(principal, "doc:edit") is True
        assert engine.has_permission(principal, "doc:delete") is False
        assert engine.has_permission(principal, "") is False

    def test_has_menu_permission(self, engine, principal):
        assert engine.has_menu_permission(principal, 11) is True
        assert engine.has_menu_permission(principal, 30) is False
        assert engine.has_menu_permission(principal, None) is False

    def test_has_any_and_all(self, engine, principal):
        assert engine.has_any_permission(principal, "x", "doc:edit") is True
        assert engine.has_any_permission(principal) is False
        assert engine.has_all_permissions(principal, "doc:view", "doc:edit") is True
        assert engine.has_all_permissions(principal, "doc:view", "x") is False


class TestPermissionEngineCache:
    """缓存与失效测试"""

    @pytest.fixture
    def engine(self, role_store, permission_cache):
        role_store.assign_roles(100, [ROLE_VIEWER])
        role_store.assign_roles(200, [ROLE_VIEWER])
        return PermissionEngine(role_store, cache=permission_cache)

    def test_result_is_cached(self, engine, role_store):
        """测试未失效时返回缓存结果"""
        principal = Principal(user_id=100)
        first = engine.calculate_permissions(principal)

        role_store.assign_roles(100, [ROLE_EDITOR])

        assert engine.calculate_permissions(principal) == first
        assert engine.cache.stats.hits >= 1

    def test_invalidate_user(self, engine, role_store):
        """测试用户失效后重新计算"""
        principal = Principal(user_id=100)
        engine.calculate_permissions(principal)

        role_store.assign_roles(100, [ROLE_EDITOR])
        engine.invalidate(100)

        assert engine.calculate_permissions(principal) == {"doc:view", "doc:edit"}

    def test_invalidate_role(self, engine, role_store):
        """测试角色权限变更后失效所有持有者"""
        engine.calculate_permissions(Principal(user_id=100))
        engine.calculate_permissions(Principal(user_id=200))

        role_store.add_role(Role(id=ROLE_VIEWER, key="viewer", permission_keys={"doc:view", "doc:print"}))
        engine.invalidate_role(ROLE_VIEWER)

        assert engine.calculate_permissions(Principal(user_id=100)) == {"doc:view", "doc:print"}
        assert engine.calculate_permissions(Principal(user_id=200)) == {"doc:view", "doc:print"}

    def test_invalidate_users_after_role_removed(self, engine, role_store):
        """测试删除角色后批量失效"""
        engine.calculate_permissions(Principal(user_id=100))

        affected = role_store.remove_role(ROLE_VIEWER)
        engine.invalidate_users(affected)

        assert engine.calculate_permissions(Principal(user_id=100)) == frozenset()

    def test_invalidate_all(self, engine, role_store):
        """测试全部失效"""
        engine.calculate_permissions(Principal(user_id=100))
        role_store.assign_roles(100, [ROLE_EDITOR])

        engine.invalidate_all()

        assert engine.calculate_permissions(Principal(user_id=100)) == {"doc:view", "doc:edit"}

    def test_without_cache(self, role_store):
        """测试关闭缓存时每次重新计算"""
        role_store.assign_roles(100, [ROLE_VIEWER])
        engine = PermissionEngine(role_store, use_cache=False)
        engine.calculate_permissions(Principal(user_id=100))

        role_store.assign_roles(100, [ROLE_EDITOR])

        assert engine.calculate_permissions(Principal(user_id=100)) == {"doc:view", "doc:edit"}
        assert engine.cache is None

    def test_cache_read_failure_recomputes(self, role_store):
        """测试缓存读取失败时直接重新计算"""
        backend = MagicMock(spec=CacheBackend)
        backend.get.side_effect = CacheUnavailableError("get", "connection refused")
        backend.set.side_effect = CacheUnavailableError("set", "connection refused")
        role_store.assign_roles(100, [ROLE_EDITOR])
        engine = PermissionEngine(role_store, cache=PermissionCache(backend))

        assert engine.calculate_permissions(Principal(user_id=100)) == {"doc:view", "doc:edit"}
        assert engine.cache.stats.failures >= 1

    def test_invalidate_failure_propagates(self, role_store):
        """测试失效失败时向上抛出"""
        backend = MagicMock(spec=CacheBackend)
        backend.get.return_value = None
        backend.delete.side_effect = CacheUnavailableError("delete", "timeout")
        engine = PermissionEngine(role_store, cache=PermissionCache(backend))

        with pytest.raises(CacheUnavailableError) as exc_info:
            engine.invalidate(100)

        assert exc_info.value.retryable is True

    def test_concurrent_calculation(self, engine):
        """测试并发计算结果一致"""
        results = []

        def worker():
            for _ in range(50):
                results.append(engine.calculate_permissions(Principal(user_id=100)))

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(results) == 400
        assert all(r == {"doc:view"} for r in results)

    def test_invalidate_during_calculation(self, engine, role_store, monkeypatch):
        """测试计算进行中发生的失效不会被旧结果覆盖"""
        role_store.assign_roles(100, [ROLE_EDITOR])
        read_roles = role_store.roles_of_user
        changed = []

        def roles_then_reassign(user_id):
            roles = read_roles(user_id)
            if not changed:
                changed.append(user_id)
                role_store.assign_roles(100, [ROLE_VIEWER])
                engine.invalidate(100)
            return roles

        monkeypatch.setattr(role_store, "roles_of_user", roles_then_reassign)

        assert engine.calculate_permissions(Principal(user_id=100)) == {"doc:view", "doc:edit"}
        assert engine.calculate_permissions(Principal(user_id=100)) == {"doc:view"}

    def test_invalidate_bumps_user_version(self, engine, permission_cache):
        """测试失效切换用户版本，旧槽位的写入不再可见"""
        stale_slot = permission_cache.permissions_slot(100)

        engine.invalidate(100)
        permission_cache.store(stale_slot, PermissionSet({"doc:edit"}))

        assert permission_cache.permissions_slot(100) != stale_slot
        assert permission_cache.get_permissions(100) is None

    def test_warm_up(self, engine, permission_cache, role_store, monkeypatch):
        """测试预热缓存，引用不存在角色的用户被跳过"""
        read_roles = role_store.roles_of_user
        monkeypatch.setattr(
            role_store, "roles_of_user",
            lambda user_id: {999} if user_id == 300 else read_roles(user_id),
        )
        principals = [
            Principal(user_id=100),
            Principal(user_id=200),
            Principal(user_id=300),
            Principal(user_id=1, is_admin=True),
        ]

        assert engine.warm_up(principals) == 2
        assert permission_cache.get_permissions(100).permissions == {"doc:view"}
        assert permission_cache.get_permissions(300) is None
