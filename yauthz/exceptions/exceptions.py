"""授权核心的异常体系

上层是按 HTTP 状态划分的通用业务异常，FastAPI 应用可以直接把
status_code / to_dict() 写进响应；下层是部门树、令牌、缓存相关的领域异常。
"""

import copy
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from fastapi import status


class ErrorCode(str, Enum):
    """错误代码，继承 str，可直接与字符串比较

    使用示例:
        try:
            manager.verify(token)
        except ExpiredError as e:
            assert e.code == ErrorCode.TOKEN_EXPIRED
    """

    # 通用
    BUSINESS_ERROR = "BUSINESS_ERROR"
    OPERATION_FAILED = "OPERATION_FAILED"

    # 401
    AUTHENTICATION_FAILED = "AUTHENTICATION_FAILED"
    INVALID_TOKEN = "INVALID_TOKEN"
    TOKEN_EXPIRED = "TOKEN_EXPIRED"

    # 403
    AUTHORIZATION_FAILED = "AUTHORIZATION_FAILED"
    PERMISSION_DENIED = "PERMISSION_DENIED"

    # 404
    RESOURCE_NOT_FOUND = "RESOURCE_NOT_FOUND"
    DEPT_NOT_FOUND = "DEPT_NOT_FOUND"
    ROLE_NOT_FOUND = "ROLE_NOT_FOUND"

    # 409
    RESOURCE_CONFLICT = "RESOURCE_CONFLICT"
    DUPLICATE_ENTRY = "DUPLICATE_ENTRY"
    DEPT_CYCLE = "DEPT_CYCLE"
    DEPT_HAS_CHILDREN = "DEPT_HAS_CHILDREN"

    # 400 业务规则
    DEPT_DISABLED = "DEPT_DISABLED"

    # 503
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"
    CACHE_UNAVAILABLE = "CACHE_UNAVAILABLE"


ErrorCodeType = Union[str, ErrorCode]


class BusinessException(Exception):
    """业务异常基类

    子类通过类属性声明默认的消息、错误码和 HTTP 状态，构造时均可覆盖。

    属性:
        message: 面向用户的错误消息
        code: 供程序判断的错误码（ErrorCode 或字符串）
        status_code: HTTP 状态码
        details: 明细列表
        extra: 其余上下文，原样进入 to_dict()["extra"]
    """

    default_message: str = "业务处理失败"
    default_code: ErrorCodeType = ErrorCode.BUSINESS_ERROR
    default_status: int = status.HTTP_400_BAD_REQUEST

    def __init__(
        self,
        message: Optional[str] = None,
        code: Optional[ErrorCodeType] = None,
        status_code: Optional[int] = None,
        details: Optional[List[str]] = None,
        **extra: Any
    ):
        self.message = message if message is not None else self.default_message
        self.code = code if code is not None else self.default_code
        self.status_code = status_code if status_code is not None else self.default_status
        self.details = list(details) if details else []
        self.extra = extra
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "message": self.message,
            "code": self.code,
            "status_code": self.status_code,
            "details": copy.deepcopy(self.details),
            "extra": copy.deepcopy(self.extra),
        }

    def __repr__(self) -> str:
        return f"{type(self).__name__}(code={self.code!r}, status_code={self.status_code}, message={self.message!r})"


class AuthenticationException(BusinessException):
    """401，身份无法确认"""
    default_message = "认证失败"
    default_code = ErrorCode.AUTHENTICATION_FAILED
    default_status = status.HTTP_401_UNAUTHORIZED


class AuthorizationException(BusinessException):
    """403，身份已确认但权限不足

    使用示例:
        if not engine.has_permission(principal, "system:user:remove"):
            raise AuthorizationException("您没有权限执行此操作")
    """
    default_message = "权限不足"
    default_code = ErrorCode.AUTHORIZATION_FAILED
    default_status = status.HTTP_403_FORBIDDEN


class ResourceNotFoundException(BusinessException):
    default_message = "资源不存在"
    default_code = ErrorCode.RESOURCE_NOT_FOUND
    default_status = status.HTTP_404_NOT_FOUND


class ResourceConflictException(BusinessException):
    default_message = "资源冲突"
    default_code = ErrorCode.RESOURCE_CONFLICT
    default_status = status.HTTP_409_CONFLICT


class ServiceUnavailableException(BusinessException):
    default_message = "服务暂时不可用"
    default_code = ErrorCode.SERVICE_UNAVAILABLE
    default_status = status.HTTP_503_SERVICE_UNAVAILABLE


# ==================== 领域异常 ====================


class NotFoundError(ResourceNotFoundException):
    """引用的部门 / 角色 / 用户不存在

    使用示例:
        raise NotFoundError("department", 42)
    """

    def __init__(
        self,
        resource_type: str,
        resource_id: Any,
        code: ErrorCodeType = ErrorCode.RESOURCE_NOT_FOUND,
    ):
        super().__init__(
            message=f"{resource_type} 不存在: {resource_id}",
            code=code,
            resource_type=resource_type,
            resource_id=resource_id,
        )
        self.resource_type = resource_type
        self.resource_id = resource_id


class CycleError(ResourceConflictException):
    """部门调整会形成环

    新的上级部门是自身或自身的子孙部门时抛出。
    """

    def __init__(self, dept_id: int, new_parent_id: int):
        super().__init__(
            message=f"不能将部门 {dept_id} 移动到自身或其子部门 {new_parent_id} 下",
            code=ErrorCode.DEPT_CYCLE,
            dept_id=dept_id,
            new_parent_id=new_parent_id,
        )
        self.dept_id = dept_id
        self.new_parent_id = new_parent_id


class DepartmentDisabledError(BusinessException):
    """上级部门已停用"""

    def __init__(self, dept_id: int):
        super().__init__(
            message=f"部门 {dept_id} 已停用，不允许在其下新增或移入部门",
            code=ErrorCode.DEPT_DISABLED,
            dept_id=dept_id,
        )
        self.dept_id = dept_id


class ExpiredError(AuthenticationException):
    """令牌已过期、已注销或缓存中已不存在"""

    def __init__(self, message: str = "令牌已过期", **extra: Any):
        super().__init__(message=message, code=ErrorCode.TOKEN_EXPIRED, **extra)


class InvalidError(AuthenticationException):
    """令牌格式错误、签名被篡改或类型不符"""

    def __init__(self, message: str = "无效的令牌", **extra: Any):
        super().__init__(message=message, code=ErrorCode.INVALID_TOKEN, **extra)


class CacheUnavailableError(ServiceUnavailableException):
    """缓存后端不可用

    可重试。读取路径把它当作未命中（重新计算），失效与注销路径向上抛出。
    """

    def __init__(self, operation: str, reason: str = ""):
        message = f"缓存不可用: {operation}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(
            message=message,
            code=ErrorCode.CACHE_UNAVAILABLE,
            operation=operation,
            retryable=True,
        )
        self.operation = operation
        self.retryable = True


class Err:
    """异常快捷创建类

    使用示例:
        from yauthz.exceptions import Err

        raise Err.forbidden("需要管理员权限")
        raise Err.not_found("department", 42)
    """

    @staticmethod
    def auth(message: str = "认证失败", **kwargs) -> AuthenticationException:
        """认证失败 (401)"""
        return AuthenticationException(message, **kwargs)

    @staticmethod
    def forbidden(message: str = "权限不足", **kwargs) -> AuthorizationException:
        """权限不足 (403)"""
        return AuthorizationException(message, **kwargs)

    @staticmethod
    def not_found(resource_type: str, resource_id: Any, **kwargs) -> NotFoundError:
        """资源不存在 (404)"""
        return NotFoundError(resource_type, resource_id, **kwargs)

    @staticmethod
    def conflict(message: str = "资源冲突", **kwargs) -> ResourceConflictException:
        """资源冲突 (409)"""
        return ResourceConflictException(message, **kwargs)

    @staticmethod
    def unavailable(message: str = "服务暂时不可用", **kwargs) -> ServiceUnavailableException:
        """服务不可用 (503)"""
        return ServiceUnavailableException(message, **kwargs)

    @staticmethod
    def fail(message: str = "操作失败", **kwargs) -> BusinessException:
        """通用业务异常 (400)"""
        return BusinessException(message, **kwargs)
