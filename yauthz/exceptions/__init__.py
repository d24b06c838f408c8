"""异常模块

提供业务异常基类与授权核心的领域异常。

使用示例:
    from yauthz.exceptions import CycleError, ExpiredError

    try:
        tree.move(2, 3)
    except CycleError as e:
        print(e.to_dict())
"""

from .exceptions import (
    Err,
    ErrorCode,
    ErrorCodeType,
    BusinessException,
    AuthenticationException,        # 401
    AuthorizationException,         # 403
    ResourceNotFoundException,      # 404
    ResourceConflictException,      # 409
    ServiceUnavailableException,    # 503
    # 领域异常
    NotFoundError,
    CycleError,
    DepartmentDisabledError,
    ExpiredError,
    InvalidError,
    CacheUnavailableError,
)

__all__ = [
    "Err",
    "ErrorCode",
    "ErrorCodeType",
    "BusinessException",
    "AuthenticationException",
    "AuthorizationException",
    "ResourceNotFoundException",
    "ResourceConflictException",
    "ServiceUnavailableException",
    "NotFoundError",
    "CycleError",
    "DepartmentDisabledError",
    "ExpiredError",
    "InvalidError",
    "CacheUnavailableError",
]
