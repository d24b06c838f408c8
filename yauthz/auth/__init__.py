"""认证模块

令牌签发、校验、刷新与注销。令牌只携带会话 id，权限快照保存在缓存中。

使用示例:
    from yauthz.auth import SessionManager

    manager = SessionManager(engine, resolver, backend, settings.token)
    snapshot = manager.issue(principal)
    manager.verify(snapshot.token)
"""

from .jwt import (
    TokenCodec,
    UUID_CLAIM,
    TOKEN_TYPE_ACCESS,
    TOKEN_TYPE_REFRESH,
)
from .session import (
    SessionManager,
    SessionSnapshot,
    SessionState,
    RefreshRecord,
)
from .setup import AuthzSetup, setup_authz

__all__ = [
    "TokenCodec",
    "UUID_CLAIM",
    "TOKEN_TYPE_ACCESS",
    "TOKEN_TYPE_REFRESH",
    "SessionManager",
    "SessionSnapshot",
    "SessionState",
    "RefreshRecord",
    "AuthzSetup",
    "setup_authz",
]
