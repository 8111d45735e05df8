"""
认证与授权模块

JWT 认证 + 基于菜单授权的动态 RBAC 权限校验。
"""
import logging
from datetime import datetime, timedelta, UTC
from typing import List, Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from app.config import settings
from app.database import get_db
from app.system.models.rbac import SysUser
from app.system.services.rbac_service import PermissionService
from app.system.services.user_service import get_password_hash, verify_password
from core.security.errors import Unauthenticated
from core.security.guard import check_access
from core.security.permission import permission_provider_registry

logger = logging.getLogger(__name__)

# 缺少凭证时交给 get_current_user 返回 401，而不是 HTTPBearer 默认的 403
security = HTTPBearer(auto_error=False)


def create_access_token(user_id: int, role_keys: Optional[List[str]] = None,
                        expires_minutes: Optional[int] = None) -> str:
    """创建 JWT token"""
    minutes = expires_minutes if expires_minutes is not None else settings.ACCESS_TOKEN_EXPIRE_MINUTES
    expire = datetime.now(UTC) + timedelta(minutes=minutes)
    to_encode = {
        "sub": str(user_id),
        "exp": expire,
    }
    if role_keys is not None:
        to_encode["role_keys"] = role_keys
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_token(token: str) -> dict:
    """解码 JWT token"""
    try:
        return jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="无效的认证凭证"
        )


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db)
) -> SysUser:
    """获取当前登录用户"""
    if credentials is None:
        raise Unauthenticated()

    payload = decode_token(credentials.credentials)
    try:
        user_id = int(payload.get("sub"))
    except (TypeError, ValueError):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="无效的认证凭证"
        )

    user = db.query(SysUser).filter(
        SysUser.id == user_id,
        SysUser.deleted == False,  # noqa: E712
    ).first()
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="用户不存在"
        )
    if not user.is_enabled:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="账号已停用"
        )
    return user


def require_permission(*permission_codes: str):
    """动态权限检查依赖 - 支持多个权限码（OR 逻辑）

    检查顺序:
    1. 未声明权限码直接通过
    2. 超级管理员角色始终通过
    3. 聚合权限集包含任一权限码则通过
    4. 否则 403

    已注册 RBAC provider 时走其缓存，否则直接查库。
    """
    async def permission_checker(
        current_user: SysUser = Depends(get_current_user),
        db: Session = Depends(get_db),
    ) -> SysUser:
        if permission_provider_registry.has_provider():
            is_superuser = permission_provider_registry.is_superuser(current_user.id)
            permissions = lambda: permission_provider_registry.get_user_permissions(current_user.id)  # noqa: E731
        else:
            svc = PermissionService(db)
            is_superuser = svc.is_superuser(current_user.id)
            permissions = lambda: svc.get_user_permissions(current_user.id)  # noqa: E731

        check_access(permission_codes, current_user.id, is_superuser, permissions)
        return current_user
    return permission_checker


__all__ = [
    "get_password_hash", "verify_password", "create_access_token", "decode_token",
    "get_current_user", "require_permission",
]
