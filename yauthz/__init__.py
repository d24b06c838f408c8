"""
yauthz - 授权核心

提供部门树、角色权限继承、数据范围解析和会话快照
"""

from .version import __version__, __author__, __description__

# 导出异常
from .exceptions import (
    Err,
    ErrorCode,
    BusinessException,
    NotFoundError,
    CycleError,
    DepartmentDisabledError,
    ExpiredError,
    InvalidError,
    CacheUnavailableError,
)

# 导出配置
from .config import (
    AuthzSettings,
    PermissionSettings,
    TokenSettings,
    CacheSettings,
    RedisSettings,
    LoggingSettings,
    load_yaml_config,
)

# 导出日志
from .log import get_logger, setup_logger, setup_root_logger

# 导出缓存
from .cache import CacheBackend, MemoryBackend, RedisBackend, create_cache_backend

# 导出组织
from .organization import Department, DepartmentTree

# 导出权限
from .permission import (
    ALL_PERMISSION,
    DataScopeType,
    InheritanceStrategy,
    MergeStrategy,
    Role,
    UserDataPermission,
    Principal,
    PermissionSet,
    EffectiveDataScope,
    Unrestricted,
    SelfOnly,
    DeptSet,
    RoleStore,
    InMemoryRoleStore,
    PermissionCache,
    PermissionEngine,
    DataScopeResolver,
    build_data_scope_criteria,
    apply_data_scope,
)

# 导出认证
from .auth import (
    TokenCodec,
    SessionManager,
    SessionSnapshot,
    SessionState,
    AuthzSetup,
    setup_authz,
)

__all__ = [
    "__version__",
    "__author__",
    "__description__",
    # 异常
    "Err",
    "ErrorCode",
    "BusinessException",
    "NotFoundError",
    "CycleError",
    "DepartmentDisabledError",
    "ExpiredError",
    "InvalidError",
    "CacheUnavailableError",
    # 配置
    "AuthzSettings",
    "PermissionSettings",
    "TokenSettings",
    "CacheSettings",
    "RedisSettings",
    "LoggingSettings",
    "load_yaml_config",
    # 日志
    "get_logger",
    "setup_logger",
    "setup_root_logger",
    # 缓存
    "CacheBackend",
    "MemoryBackend",
    "RedisBackend",
    "create_cache_backend",
    # 组织
    "Department",
    "DepartmentTree",
    # 权限
    "ALL_PERMISSION",
    "DataScopeType",
    "InheritanceStrategy",
    "MergeStrategy",
    "Role",
    "UserDataPermission",
    "Principal",
    "PermissionSet",
    "EffectiveDataScope",
    "Unrestricted",
    "SelfOnly",
    "DeptSet",
    "RoleStore",
    "InMemoryRoleStore",
    "PermissionCache",
    "PermissionEngine",
    "DataScopeResolver",
    "build_data_scope_criteria",
    "apply_data_scope",
    # 认证
    "TokenCodec",
    "SessionManager",
    "SessionSnapshot",
    "SessionState",
    "AuthzSetup",
    "setup_authz",
]
