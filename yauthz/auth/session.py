"""会话 / 令牌生命周期

登录时把权限计算结果打包成会话快照写入缓存，后续请求只校验令牌并读取快照，
直到快照过期或被显式注销。

缓存键:
    login_user:<uuid>        会话快照，TTL = 访问令牌有效期
    refresh_token:<uuid>     刷新记录（用户身份 + 当前访问会话 id），TTL = 刷新令牌有效期
    user_tokens:<user_id>    用户的活跃会话索引 {访问会话 id: 刷新会话 id}
    session_state:<uuid>     已结束会话的终态（已注销 / 已刷新），用于区分状态

使用示例:
    manager = SessionManager(engine, resolver, backend, settings.token)

    snapshot = manager.issue(principal)
    snapshot.token, snapshot.refresh_token

    # 后续请求
    snapshot = manager.verify(token)
    snapshot.has_permission("doc:edit")

    # 访问令牌过期后
    snapshot = manager.refresh(refresh_token)

    # 退出登录
    manager.revoke(token)
"""

import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, FrozenSet, Optional
from uuid import uuid4

from yauthz.cache import CacheBackend
from yauthz.config import TokenSettings
from yauthz.exceptions import CacheUnavailableError, ExpiredError
from yauthz.log import get_logger
from yauthz.permission import (
    ALL_PERMISSION,
    DataScopeResolver,
    EffectiveDataScope,
    PermissionEngine,
    Principal,
)

from .jwt import TOKEN_TYPE_ACCESS, TOKEN_TYPE_REFRESH, UUID_CLAIM, TokenCodec

logger = get_logger("yauthz.auth.session")

SNAPSHOT_PREFIX = "login_user"
REFRESH_PREFIX = "refresh_token"
USER_INDEX_PREFIX = "user_tokens"
STATE_PREFIX = "session_state"


class SessionState(str, Enum):
    """会话状态

    ISSUED 只存在于 issue() 内部，快照写入缓存后即为 ACTIVE。
    """
    ISSUED = "issued"
    ACTIVE = "active"
    REFRESHED = "refreshed"
    EXPIRED = "expired"
    REVOKED = "revoked"


@dataclass(frozen=True)
class SessionSnapshot:
    """会话快照

    登录（或刷新）时一次性计算，有效期内不会重新计算。
    角色或权限变更要等下一次刷新才会体现在快照中。
    """
    token: str
    refresh_token: str
    session_id: str
    user_id: int
    department_id: Optional[int]
    permissions: FrozenSet[str]
    roles: FrozenSet[str]
    data_scope: EffectiveDataScope
    issued_at: float
    expires_at: float
    menu_ids: FrozenSet[int] = field(default_factory=frozenset)

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at

    def has_permission(self, permission: str) -> bool:
        if not permission:
            return False
        return ALL_PERMISSION in self.permissions or permission in self.permissions

    def has_role(self, role_key: str) -> bool:
        return role_key in self.roles

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "department_id": self.department_id,
            "permissions": sorted(self.permissions),
            "roles": sorted(self.roles),
            "menu_ids": sorted(self.menu_ids),
            "data_scope": type(self.data_scope).__name__,
            "issued_at": self.issued_at,
            "expires_at": self.expires_at,
        }


@dataclass(frozen=True)
class RefreshRecord:
    """刷新令牌对应的缓存记录"""
    refresh_id: str
    principal: Principal
    session_id: str
    issued_at: float
    expires_at: float


class SessionManager:
    """会话管理器

    缓存故障策略：
    - verify 读取失败视为快照不存在，按过期处理
    - issue / refresh / revoke / 失效写入失败时抛出 CacheUnavailableError
    """

    def __init__(
        self,
        engine: PermissionEngine,
        resolver: DataScopeResolver,
        backend: CacheBackend,
        settings: Optional[TokenSettings] = None,
        principal_loader: Optional[Callable[[int], Principal]] = None,
        clock: Callable[[], float] = time.time,
    ):
        """
        Args:
            engine: 权限继承引擎
            resolver: 数据范围解析器
            backend: 会话快照存放的缓存后端
            settings: 令牌配置，默认读取环境变量
            principal_loader: 刷新时按 user_id 重新加载用户身份，默认沿用登录时的身份
            clock: 时间源（unix 秒）
        """
        self.engine = engine
        self.resolver = resolver
        self.backend = backend
        self.settings = settings or TokenSettings()
        self.principal_loader = principal_loader
        self._clock = clock
        self.codec = TokenCodec(self.settings.secret_key, self.settings.algorithm, clock=clock)
        self._index_lock = threading.Lock()

    @property
    def access_ttl(self) -> int:
        return self.settings.access_token_expire_seconds

    @property
    def refresh_ttl(self) -> int:
        return self.settings.refresh_token_expire_seconds

    # ==================== 签发 ====================

    def issue(self, principal: Principal) -> SessionSnapshot:
        """登录成功后签发会话

        Raises:
            NotFoundError: 用户关联了不存在的角色或部门
            CacheUnavailableError: 快照无法写入缓存
        """
        now = self._clock()
        refresh_id = uuid4().hex
        refresh_expires_at = now + self.refresh_ttl
        refresh_token = self.codec.encode(refresh_id, TOKEN_TYPE_REFRESH, now, refresh_expires_at)

        snapshot = self._store_snapshot(principal, refresh_token, now)
        self._store_refresh_record(
            RefreshRecord(refresh_id, principal, snapshot.session_id, now, refresh_expires_at),
            ttl=self.refresh_ttl,
        )
        self._index_add(principal.user_id, snapshot.session_id, refresh_id)

        logger.info(
            f"Session issued: user_id={principal.user_id}, session={snapshot.session_id[:8]}, "
            f"state={SessionState.ACTIVE.value}"
        )
        return snapshot

    def _store_snapshot(self, principal: Principal, refresh_token: str, now: float) -> SessionSnapshot:
        """计算权限与数据范围，生成访问令牌并写入快照"""
        granted = self.engine.calculate_permission_set(principal)
        roles = self.engine.role_keys_of(principal)
        scope = self.resolver.resolve_dept_filter(principal)

        session_id = uuid4().hex
        expires_at = now + self.access_ttl
        token = self.codec.encode(session_id, TOKEN_TYPE_ACCESS, now, expires_at)

        snapshot = SessionSnapshot(
            token=token,
            refresh_token=refresh_token,
            session_id=session_id,
            user_id=principal.user_id,
            department_id=principal.department_id,
            permissions=granted.permissions,
            roles=roles,
            data_scope=scope,
            issued_at=now,
            expires_at=expires_at,
            menu_ids=granted.menu_ids,
        )
        self.backend.set(f"{SNAPSHOT_PREFIX}:{session_id}", snapshot, ttl=self.access_ttl)
        return snapshot

    def _store_refresh_record(self, record: RefreshRecord, ttl: float) -> None:
        self.backend.set(f"{REFRESH_PREFIX}:{record.refresh_id}", record, ttl=max(1, ttl))

    # ==================== 校验 ====================

    def verify(self, token: str) -> SessionSnapshot:
        """校验访问令牌并返回缓存中的快照（不重新计算）

        Raises:
            InvalidError: 令牌格式错误、被篡改或不是访问令牌
            ExpiredError: 令牌过期、已注销，或缓存中已不存在
        """
        claims = self.codec.decode(token, expected_type=TOKEN_TYPE_ACCESS)
        session_id = claims[UUID_CLAIM]

        snapshot = self._read(f"{SNAPSHOT_PREFIX}:{session_id}")
        if snapshot is None:
            state = self._ended_state(session_id)
            raise ExpiredError(_ended_message(state), state=state.value)
        if snapshot.is_expired(self._clock()):
            raise ExpiredError()
        return snapshot

    def extract_token(self, header_value: str) -> str:
        """从请求头的值中取出令牌"""
        return self.settings.strip_token_prefix((header_value or "").strip())

    # ==================== 刷新 ====================

    def refresh(self, refresh_token: str) -> SessionSnapshot:
        """用刷新令牌换取新的访问会话

        重新计算权限和数据范围，旧的访问快照立即删除。
        rotate_refresh_token 开启时同时轮换刷新令牌，旧刷新令牌随即失效。

        Raises:
            InvalidError: 令牌格式错误、被篡改或不是刷新令牌
            ExpiredError: 刷新令牌过期或已失效
            CacheUnavailableError: 缓存不可用
        """
        claims = self.codec.decode(refresh_token, expected_type=TOKEN_TYPE_REFRESH)
        refresh_id = claims[UUID_CLAIM]
        refresh_key = f"{REFRESH_PREFIX}:{refresh_id}"

        record: Optional[RefreshRecord] = self.backend.get(refresh_key)
        now = self._clock()
        if record is None or now >= record.expires_at:
            raise ExpiredError("刷新令牌已失效")

        rotate = self.settings.rotate_refresh_token
        # 轮换模式下先占用刷新令牌，并发使用同一令牌时只有一方能删除成功
        if rotate and not self.backend.delete(refresh_key):
            raise ExpiredError("刷新令牌已失效", state=SessionState.REFRESHED.value)

        principal = record.principal
        if self.principal_loader is not None:
            principal = self.principal_loader(principal.user_id)

        old_session_id = record.session_id
        self._end_session(old_session_id, SessionState.REFRESHED, remaining=self.access_ttl)

        if rotate:
            self._mark_state(refresh_id, SessionState.REFRESHED, remaining=record.expires_at - now)
            new_refresh_id = uuid4().hex
            refresh_expires_at = now + self.refresh_ttl
            new_refresh_token = self.codec.encode(
                new_refresh_id, TOKEN_TYPE_REFRESH, now, refresh_expires_at
            )
        else:
            new_refresh_id = refresh_id
            refresh_expires_at = record.expires_at
            new_refresh_token = refresh_token

        snapshot = self._store_snapshot(principal, new_refresh_token, now)
        self._store_refresh_record(
            RefreshRecord(new_refresh_id, principal, snapshot.session_id, now, refresh_expires_at),
            ttl=refresh_expires_at - now,
        )
        self._index_replace(principal.user_id, old_session_id, snapshot.session_id, new_refresh_id)

        logger.info(
            f"Session refreshed: user_id={principal.user_id}, "
            f"session={old_session_id[:8]} -> {snapshot.session_id[:8]}, "
            f"rotated={rotate}"
        )
        return snapshot

    # ==================== 注销 ====================

    def revoke(self, token: str) -> bool:
        """注销令牌，立即删除缓存条目

        传入刷新令牌时，同时删除它当前对应的访问快照。
        已过期的令牌同样可以注销。

        Returns:
            是否删除了存在的会话

        Raises:
            InvalidError: 令牌格式错误或被篡改
            CacheUnavailableError: 缓存不可用，注销未完成
        """
        claims = self.codec.decode(token, verify_expiry=False)
        token_id = claims[UUID_CLAIM]
        remaining = self.codec.remaining_seconds(claims)

        if claims["token_type"] == TOKEN_TYPE_ACCESS:
            snapshot: Optional[SessionSnapshot] = self.backend.get(f"{SNAPSHOT_PREFIX}:{token_id}")
            if snapshot is None:
                return False
            self._end_session(token_id, SessionState.REVOKED, remaining)
            self._index_remove(snapshot.user_id, token_id)
            logger.info(f"Session revoked: user_id={snapshot.user_id}, session={token_id[:8]}")
            return True

        refresh_key = f"{REFRESH_PREFIX}:{token_id}"
        record: Optional[RefreshRecord] = self.backend.get(refresh_key)
        self.backend.delete(refresh_key)
        self._mark_state(token_id, SessionState.REVOKED, remaining)
        if record is None:
            return False
        self._end_session(record.session_id, SessionState.REVOKED, self.access_ttl)
        self._index_remove(record.principal.user_id, record.session_id)
        logger.info(
            f"Refresh token revoked: user_id={record.principal.user_id}, "
            f"session={record.session_id[:8]}"
        )
        return True

    def revoke_user_sessions(self, user_id: int) -> int:
        """注销用户的全部会话（如禁用账号、修改密码后）

        Returns:
            注销的会话数量
        """
        index_key = f"{USER_INDEX_PREFIX}:{user_id}"
        with self._index_lock:
            sessions: Dict[str, str] = self.backend.get(index_key) or {}
            for session_id, refresh_id in sessions.items():
                self._end_session(session_id, SessionState.REVOKED, self.access_ttl)
                self.backend.delete(f"{REFRESH_PREFIX}:{refresh_id}")
                self._mark_state(refresh_id, SessionState.REVOKED, self.refresh_ttl)
            self.backend.delete(index_key)
        logger.info(f"All sessions revoked: user_id={user_id}, count={len(sessions)}")
        return len(sessions)

    # ==================== 失效 ====================

    def invalidate(self, user_id: int) -> None:
        """丢弃用户已计算的权限和数据范围

        已签发的快照不受影响，直到自身过期或刷新。

        Raises:
            CacheUnavailableError: 失效未完成
        """
        self.engine.invalidate(user_id)
        if self.resolver.cache is not self.engine.cache:
            self.resolver.invalidate(user_id)

    # ==================== 状态 ====================

    def get_state(self, token: str) -> SessionState:
        """查询令牌对应会话的当前状态

        Raises:
            InvalidError: 令牌格式错误或被篡改
        """
        claims = self.codec.decode(token, verify_expiry=False)
        token_id = claims[UUID_CLAIM]
        prefix = SNAPSHOT_PREFIX if claims["token_type"] == TOKEN_TYPE_ACCESS else REFRESH_PREFIX

        entry = self._read(f"{prefix}:{token_id}")
        if entry is not None and self._clock() < entry.expires_at:
            return SessionState.ACTIVE
        return self._ended_state(token_id)

    # ==================== 内部方法 ====================

    def _read(self, key: str) -> Optional[Any]:
        try:
            return self.backend.get(key)
        except CacheUnavailableError as e:
            logger.warning(f"Session cache read failed, treating as expired: {e.message}")
            return None

    def _end_session(self, session_id: str, state: SessionState, remaining: float) -> None:
        self.backend.delete(f"{SNAPSHOT_PREFIX}:{session_id}")
        self._mark_state(session_id, state, remaining)

    def _mark_state(self, token_id: str, state: SessionState, remaining: float) -> None:
        """记录会话终态，仅用于状态查询，写入失败不影响注销结果"""
        if remaining <= 0:
            return
        try:
            self.backend.set(f"{STATE_PREFIX}:{token_id}", state.value, ttl=remaining)
        except CacheUnavailableError as e:
            logger.warning(f"Session state write failed: session={token_id[:8]}, {e.message}")

    def _ended_state(self, token_id: str) -> SessionState:
        value = self._read(f"{STATE_PREFIX}:{token_id}")
        if value is None:
            return SessionState.EXPIRED
        return SessionState(value)

    def _index_add(self, user_id: int, session_id: str, refresh_id: str) -> None:
        self._index_replace(user_id, None, session_id, refresh_id)

    def _index_replace(
        self,
        user_id: int,
        old_session_id: Optional[str],
        session_id: str,
        refresh_id: str,
    ) -> None:
        # 读改写仅在进程内加锁，多进程共享 Redis 时可能丢失并发写入
        index_key = f"{USER_INDEX_PREFIX}:{user_id}"
        with self._index_lock:
            sessions: Dict[str, str] = dict(self.backend.get(index_key) or {})
            if old_session_id is not None:
                sessions.pop(old_session_id, None)
            sessions[session_id] = refresh_id
            self.backend.set(index_key, sessions, ttl=self.refresh_ttl)

    def _index_remove(self, user_id: int, session_id: str) -> None:
        index_key = f"{USER_INDEX_PREFIX}:{user_id}"
        try:
            with self._index_lock:
                sessions: Dict[str, str] = dict(self.backend.get(index_key) or {})
                if sessions.pop(session_id, None) is None:
                    return
                if sessions:
                    self.backend.set(index_key, sessions, ttl=self.refresh_ttl)
                else:
                    self.backend.delete(index_key)
        except CacheUnavailableError as e:
            logger.warning(f"Session index update failed: user_id={user_id}, {e.message}")


def _ended_message(state: SessionState) -> str:
    if state is SessionState.REVOKED:
        return "令牌已注销"
    if state is SessionState.REFRESHED:
        return "令牌已被刷新"
    return "令牌已过期"


__all__ = [
    "SessionManager",
    "SessionSnapshot",
    "SessionState",
    "RefreshRecord",
    "SNAPSHOT_PREFIX",
    "REFRESH_PREFIX",
    "USER_INDEX_PREFIX",
]
