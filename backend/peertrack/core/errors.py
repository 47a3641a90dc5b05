from __future__ import annotations

from typing import Optional


class WorkflowError(Exception):
    """
    业务异常基类。

    中文注释:
    - service 层只抛这些异常，不直接构造 HTTP 响应；
    - 路由层由统一的 exception handler 映射为 {success: false, message} 信封。
    """

    status_code: int = 500
    default_message: str = "Workflow error"

    def __init__(self, message: Optional[str] = None, *, status_code: Optional[int] = None) -> None:
        self.message = message or self.default_message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)


class ValidationError(WorkflowError):
    status_code = 400
    default_message = "Invalid input"


class AuthenticationError(WorkflowError):
    status_code = 401
    default_message = "Not authorized. Please login."


class AuthorizationError(WorkflowError):
    status_code = 403
    default_message = "You are not allowed to perform this action"


class NotFoundError(WorkflowError):
    status_code = 404
    default_message = "Resource not found"


class ConflictError(WorkflowError):
    status_code = 409
    default_message = "Resource already exists"


class StateError(WorkflowError):
    status_code = 400
    default_message = "Operation not allowed in the current state"
