"""
core/security/guard.py - 服务端权限守卫判定

与 Web 框架无关的纯判定逻辑，app 层的 require_permission 依赖调用它。

判定顺序:
1. 未声明所需权限 -> 放行
2. 无调用者身份 -> Unauthenticated
3. 拥有超级管理员角色 -> 放行（不看聚合权限集）
4. 聚合权限集与所需权限有交集（OR）-> 放行
5. 否则 -> Forbidden
"""
from typing import Callable, Iterable, Optional, Sequence, Set, Union
import logging

from core.security.errors import Forbidden, Unauthenticated

logger = logging.getLogger(__name__)

PermissionSource = Union[Iterable[str], Callable[[], Iterable[str]]]


def check_access(
    required: Sequence[str],
    user_id: Optional[int],
    is_superuser: bool,
    permissions: PermissionSource,
) -> None:
    """
    校验一次请求，不通过时抛出异常

    Args:
        required: 操作声明的权限码（为空表示公开）
        user_id: 调用者 ID，None 表示未认证
        is_superuser: 调用者角色集是否包含超级管理员角色
        permissions: 调用者聚合权限集，或惰性获取它的函数

    Raises:
        Unauthenticated: 无调用者身份
        Forbidden: 权限不足
    """
    if not required:
        return

    if user_id is None:
        raise Unauthenticated()

    if is_superuser:
        return

    held: Set[str] = set(permissions() if callable(permissions) else permissions)
    if any(code in held for code in required):
        return

    logger.warning(f"Permission denied: user={user_id} required={list(required)}")
    raise Forbidden(required=required)


__all__ = ["check_access"]
