"""授权核心一站式设置

按 AuthzSettings 组装缓存后端、权限引擎、数据范围解析器和会话管理器。

使用示例:

    from yauthz import setup_authz, load_yaml_config, AuthzSettings

    settings = load_yaml_config("config/authz.yaml", AuthzSettings)
    authz = setup_authz(store, tree, settings=settings)

    snapshot = authz.sessions.issue(principal)
    authz.engine.has_permission(principal, "doc:edit")

    # 进程退出时
    authz.close()
"""

from dataclasses import dataclass
from typing import Any, Callable, Iterable, Optional

from yauthz.cache import CacheBackend, create_cache_backend
from yauthz.config import AuthzSettings
from yauthz.log import get_logger
from yauthz.organization import DepartmentTree
from yauthz.permission import (
    DataScopeResolver,
    PermissionCache,
    PermissionEngine,
    Principal,
    RoleStore,
)

from .session import SessionManager

logger = get_logger("yauthz.auth.setup")


@dataclass
class AuthzSetup:
    """setup_authz() 返回的组件集合

    engine 与 resolver 共用同一个 PermissionCache，
    engine.invalidate(user_id) 会同时清除该用户的数据范围缓存。
    """
    settings: AuthzSettings
    backend: CacheBackend
    cache: PermissionCache
    engine: PermissionEngine
    resolver: DataScopeResolver
    sessions: SessionManager

    def warm_up(self, principals: Iterable[Principal]) -> int:
        """启动时预热权限与数据范围缓存，返回权限预热成功的用户数"""
        principals = list(principals)
        warmed = self.engine.warm_up(principals)
        self.resolver.warm_up(principals)
        return warmed

    def close(self) -> None:
        """停止内存后端的清理线程或关闭 Redis 连接"""
        self.backend.close()


def setup_authz(
    store: RoleStore,
    tree: DepartmentTree,
    settings: Optional[AuthzSettings] = None,
    redis_client: Any = None,
    backend: Optional[CacheBackend] = None,
    principal_loader: Optional[Callable[[int], Principal]] = None,
    clock: Optional[Callable[[], float]] = None,
) -> AuthzSetup:
    """组装授权核心

    Args:
        store: 角色权限存储
        tree: 部门树
        settings: 全局配置，默认读取环境变量
        redis_client: 已有的 Redis 客户端（backend=redis 时使用）
        backend: 直接指定缓存后端，优先于配置
        principal_loader: 刷新会话时重新加载用户身份
        clock: 会话时间源（unix 秒），默认 time.time
    """
    settings = settings or AuthzSettings()
    if backend is None:
        backend = create_cache_backend(settings.cache, settings.redis, redis_client=redis_client)
        if (
            settings.cache.backend == "memory"
            and settings.cache.default_ttl < settings.token.refresh_token_expire_seconds
        ):
            logger.warning(
                f"Memory cache default_ttl={settings.cache.default_ttl}s is shorter than "
                f"refresh_token_expire_seconds={settings.token.refresh_token_expire_seconds}s, "
                f"refresh tokens will expire early"
            )

    cache = PermissionCache(backend, ttl=settings.permission.cache_timeout_seconds)
    engine = PermissionEngine(store, settings=settings.permission, cache=cache)
    resolver = DataScopeResolver(store, tree, settings=settings.permission, cache=cache)

    session_kwargs = {} if clock is None else {"clock": clock}
    sessions = SessionManager(
        engine,
        resolver,
        backend,
        settings=settings.token,
        principal_loader=principal_loader,
        **session_kwargs,
    )

    logger.info(
        f"Authz core ready: backend={type(backend).__name__}, "
        f"inheritance={settings.permission.inheritance_strategy}, "
        f"merge={settings.permission.merge_strategy}"
    )
    return AuthzSetup(
        settings=settings,
        backend=backend,
        cache=cache,
        engine=engine,
        resolver=resolver,
        sessions=sessions,
    )


__all__ = [
    "AuthzSetup",
    "setup_authz",
]
