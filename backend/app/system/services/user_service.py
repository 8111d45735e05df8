"""
用户 Service - 账号创建、登录校验、个人资料
"""
from typing import Dict, Optional
import logging

import bcrypt
from sqlalchemy.orm import Session

from app.system.exceptions import BusinessRuleError
from app.system.models.menu import Status
from app.system.models.rbac import SysUser
from app.system.services.rbac_service import PermissionService

logger = logging.getLogger(__name__)


def get_password_hash(password: str) -> str:
    """密码哈希"""
    salt = bcrypt.gensalt()
    return bcrypt.hashpw(password.encode('utf-8'), salt).decode('utf-8')


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """验证密码"""
    return bcrypt.checkpw(plain_password.encode('utf-8'), hashed_password.encode('utf-8'))


class UserService:
    """用户账号服务"""

    def __init__(self, db: Session):
        self.db = db

    def get_by_username(self, username: str) -> Optional[SysUser]:
        return self.db.query(SysUser).filter(
            SysUser.username == username,
            SysUser.deleted == False,  # noqa: E712
        ).first()

    def create_user(self, username: str, password: str, nickname: str = "",
                    status=Status.ENABLED) -> SysUser:
        if self.get_by_username(username):
            raise BusinessRuleError(f"用户名 '{username}' 已存在")
        user = SysUser(
            username=username,
            password_hash=get_password_hash(password),
            nickname=nickname or username,
            status=getattr(status, "value", status),
        )
        self.db.add(user)
        self.db.flush()
        return user

    def authenticate(self, username: str, password: str) -> Optional[SysUser]:
        """用户名 + 密码校验；停用账号抛出 ValueError"""
        user = self.get_by_username(username)
        if not user or not verify_password(password, user.password_hash):
            logger.info(f"Login failed for '{username}'")
            return None
        if not user.is_enabled:
            raise ValueError("账号已停用")
        return user

    def get_profile(self, user: SysUser) -> Dict:
        """个人资料：角色 + 聚合后的权限"""
        resolution = PermissionService(self.db).compute_permissions(user.id)
        return {
            "user_id": user.id,
            "username": user.username,
            "nickname": user.nickname,
            "roles": list(resolution.roles),
            "permissions": resolution.to_list(),
            "state": resolution.state.value,
        }
