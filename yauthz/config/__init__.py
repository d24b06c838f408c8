"""配置模块

快速开始:
    from yauthz.config import AuthzSettings, load_yaml_config

    settings = load_yaml_config("config/authz.yaml", AuthzSettings)
"""

from .settings import (
    AuthzSettings,
    PermissionSettings,
    TokenSettings,
    CacheSettings,
    RedisSettings,
    LoggingSettings,
)

from .loader import (
    ConfigLoader,
    load_yaml_config,
)

__all__ = [
    "AuthzSettings",
    "PermissionSettings",
    "TokenSettings",
    "CacheSettings",
    "RedisSettings",
    "LoggingSettings",
    "ConfigLoader",
    "load_yaml_config",
]
