"""
配置模块
提供授权核心的默认配置，业务项目可以继承并覆盖
"""

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings


class PermissionSettings(BaseSettings):
    """权限继承配置

    使用示例:
        from yauthz.config import PermissionSettings

        perm_config = PermissionSettings(
            inheritance_strategy="override",
            merge_strategy="intersection",
            cache_timeout_seconds=60,
        )

    配置说明:
        - inheritance_strategy: 多个角色权限集合的组合方式（additive / override / intersection）
        - merge_strategy: 角色权限与用户直授权限的合并方式（union / intersection / difference）
        - enabled: 关闭后只做角色权限并集，不合并直授权限
        - admin_auto_inherit_all: 超级管理员直接获得全部权限和全部数据范围
    """
    inheritance_strategy: Literal["additive", "override", "intersection"] = Field(
        default="additive", description="权限继承策略"
    )
    merge_strategy: Literal["union", "intersection", "difference"] = Field(
        default="union", description="权限合并策略"
    )
    enabled: bool = Field(default=True, description="是否启用权限继承")
    admin_auto_inherit_all: bool = Field(default=True, description="超级管理员是否自动拥有所有权限")
    cache_timeout_seconds: int = Field(default=300, ge=1, description="权限计算结果缓存时间（秒）")
    cache_maxsize: int = Field(default=10000, ge=1, description="本地缓存最大用户数")

    class Config:
        env_prefix = "YAUTHZ_PERM_"


class TokenSettings(BaseSettings):
    """令牌配置

    使用示例:
        token_config = TokenSettings(
            secret_key="your-secret-key",
            access_token_expire_seconds=2 * 3600,
            rotate_refresh_token=False,   # 刷新时沿用原刷新令牌
        )
    """
    secret_key: str = Field(default="change-me-in-production", description="JWT 签名密钥")
    algorithm: str = Field(default="HS256", description="JWT 算法")
    access_token_expire_seconds: int = Field(default=86400, ge=1, description="访问令牌有效期（秒），默认 24 小时")
    refresh_token_expire_seconds: int = Field(default=604800, ge=1, description="刷新令牌有效期（秒），默认 7 天")
    rotate_refresh_token: bool = Field(default=True, description="刷新时是否轮换刷新令牌")
    header: str = Field(default="Authorization", description="令牌请求头名称")
    token_prefix: str = Field(default="Bearer ", description="令牌前缀")

    def strip_token_prefix(self, value: str) -> str:
        """去掉请求头中的令牌前缀（如 "Bearer "）"""
        if value and self.token_prefix and value.startswith(self.token_prefix):
            return value[len(self.token_prefix):]
        return value

    class Config:
        env_prefix = "YAUTHZ_TOKEN_"


class RedisSettings(BaseSettings):
    """Redis 配置

    使用示例:
        redis_config = RedisSettings(url="redis://localhost:6379/0")
    """
    url: str = Field(default="", description="Redis连接URL")
    max_connections: int = Field(default=10, description="最大连接数")
    socket_timeout: float = Field(default=2.0, description="套接字超时（秒）")

    class Config:
        env_prefix = "YAUTHZ_REDIS_"


class CacheSettings(BaseSettings):
    """缓存后端配置

    backend 为 memory 时使用本地内存缓存（带后台清理线程），
    为 redis 时使用 Redis 原生过期。
    """
    backend: Literal["memory", "redis"] = Field(default="memory", description="缓存后端类型")
    maxsize: int = Field(default=10000, ge=1, description="本地缓存最大条目数")
    default_ttl: int = Field(default=604800, ge=1, description="默认过期时间（秒），也是本地缓存的 TTL 上限")
    sweep_interval_seconds: float = Field(default=60.0, gt=0, description="本地缓存过期清理间隔（秒）")
    key_prefix: str = Field(default="yauthz:", description="缓存键前缀")

    class Config:
        env_prefix = "YAUTHZ_CACHE_"


class LoggingSettings(BaseSettings):
    """日志配置

    使用示例:
        log_config = LoggingSettings(level="DEBUG", file_path="logs/authz.log")
    """
    level: str = Field(default="INFO", description="日志级别")
    file_path: str = Field(default="", description="日志文件路径，为空则不写文件")
    file_max_bytes: int = Field(default=10 * 1024 * 1024, description="单个日志文件最大字节数")
    file_backup_count: int = Field(default=5, description="保留的备份文件数量")
    file_encoding: str = Field(default="utf-8", description="文件编码")
    console: bool = Field(default=True, description="是否启用控制台输出")

    class Config:
        env_prefix = "YAUTHZ_LOG_"


class AuthzSettings(BaseSettings):
    """授权核心聚合配置

    直接实例化时读取环境变量（YAUTHZ_PERM_ 等前缀）；
    从 YAML 加载时可用 ${ENV:default} 引用环境变量。

    使用示例:
        from yauthz.config import AuthzSettings, load_yaml_config

        settings = load_yaml_config("config/authz.yaml", AuthzSettings)

    YAML 配置示例:
        permission:
          merge_strategy: union
          cache_timeout_seconds: 300
        token:
          secret_key: ${AUTHZ_SECRET:dev-secret}
        cache:
          backend: redis
        redis:
          url: "redis://localhost:6379/0"
    """
    permission: PermissionSettings = Field(default_factory=PermissionSettings)
    token: TokenSettings = Field(default_factory=TokenSettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    redis: RedisSettings = Field(default_factory=RedisSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    class Config:
        env_prefix = "YAUTHZ_"
        env_nested_delimiter = "__"
