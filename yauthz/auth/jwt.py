"""JWT 令牌编解码

令牌本身不携带权限数据，只签入会话的不透明 id（login_user_uuid），
权限快照保存在缓存中，按 id 查找。

使用示例:
    from yauthz.auth.jwt import TokenCodec

    codec = TokenCodec(secret_key="your-secret-key")
    token = codec.encode("3f2a...", "access", issued_at=now, expires_at=now + 3600)

    claims = codec.decode(token, expected_type="access")
    claims["login_user_uuid"]
"""

import time
from typing import Any, Callable, Dict, Optional

from jose import jwt, JWTError

from yauthz.exceptions import ExpiredError, InvalidError

UUID_CLAIM = "login_user_uuid"
TOKEN_TYPE_ACCESS = "access"
TOKEN_TYPE_REFRESH = "refresh"
TOKEN_TYPES = (TOKEN_TYPE_ACCESS, TOKEN_TYPE_REFRESH)


class TokenCodec:
    """JWT 编解码器

    过期时间按注入的 clock 判断，而不是 jose 内部的系统时间，
    以便与会话快照的 expires_at 保持同一时间源。
    """

    def __init__(
        self,
        secret_key: str,
        algorithm: str = "HS256",
        clock: Callable[[], float] = time.time,
    ):
        if not secret_key:
            raise ValueError("secret_key 不能为空")
        if not algorithm:
            raise ValueError("algorithm 不能为空")
        self.secret_key = secret_key
        self.algorithm = algorithm
        self._clock = clock

    def encode(self, session_id: str, token_type: str, issued_at: float, expires_at: float) -> str:
        """签发令牌

        Args:
            session_id: 会话 id（uuid4().hex）
            token_type: access / refresh
            issued_at: 签发时间（unix 秒）
            expires_at: 过期时间（unix 秒）
        """
        if token_type not in TOKEN_TYPES:
            raise ValueError(f"未知的令牌类型: {token_type}")
        claims = {
            UUID_CLAIM: session_id,
            "token_type": token_type,
            "iat": int(issued_at),
            "exp": int(expires_at),
        }
        return jwt.encode(claims, self.secret_key, algorithm=self.algorithm)

    def decode(
        self,
        token: str,
        expected_type: Optional[str] = None,
        verify_expiry: bool = True,
    ) -> Dict[str, Any]:
        """校验签名并返回声明

        Args:
            token: JWT 字符串
            expected_type: 期望的令牌类型，None 表示不校验
            verify_expiry: 是否校验过期时间（注销已过期的令牌时关闭）

        Raises:
            InvalidError: 格式错误、签名不符、缺少会话 id 或类型不符
            ExpiredError: 令牌已过期
        """
        if not token:
            raise InvalidError("缺少令牌")
        try:
            claims = jwt.decode(
                token,
                self.secret_key,
                algorithms=[self.algorithm],
                options={"verify_exp": False},
            )
        except JWTError as e:
            raise InvalidError(reason=str(e)) from e

        session_id = claims.get(UUID_CLAIM)
        token_type = claims.get("token_type")
        exp = claims.get("exp")
        if not isinstance(session_id, str) or not session_id or token_type not in TOKEN_TYPES:
            raise InvalidError()
        if not isinstance(exp, (int, float)):
            raise InvalidError()
        if expected_type is not None and token_type != expected_type:
            raise InvalidError(f"令牌类型错误，需要 {expected_type}")

        if verify_expiry and self._clock() >= exp:
            raise ExpiredError()
        return claims

    def remaining_seconds(self, claims: Dict[str, Any]) -> float:
        """剩余有效秒数，已过期返回 0"""
        return max(0.0, claims["exp"] - self._clock())


__all__ = [
    "TokenCodec",
    "UUID_CLAIM",
    "TOKEN_TYPE_ACCESS",
    "TOKEN_TYPE_REFRESH",
]
