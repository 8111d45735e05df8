"""
core/security/errors.py - 授权错误分类

Unauthenticated: 无调用者身份（401）
Forbidden: 身份已知但权限不足（403）
"""
from typing import Iterable, Optional, Tuple


class AuthorizationError(Exception):
    """授权错误基类"""

    status_code = 403
    default_message = "没有操作权限"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class Unauthenticated(AuthorizationError):
    """未登录或凭证无效"""

    status_code = 401
    default_message = "用户未登录"


class Forbidden(AuthorizationError):
    """权限不足"""

    status_code = 403
    default_message = "没有操作权限"

    def __init__(self, message: Optional[str] = None, required: Iterable[str] = ()):
        self.required: Tuple[str, ...] = tuple(required)
        if message is None and self.required:
            message = f"缺少权限: {', '.join(self.required)}"
        super().__init__(message)


__all__ = ["AuthorizationError", "Unauthenticated", "Forbidden"]
