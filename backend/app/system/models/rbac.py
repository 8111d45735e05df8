"""
RBAC ORM 模型 — 角色、角色-菜单授权、用户、用户-角色映射
"""
from datetime import datetime, UTC
from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from app.database import Base
from app.system.models.menu import Status


class SysRole(Base):
    """角色表"""
    __tablename__ = "sys_role"

    id = Column(Integer, primary_key=True, index=True)
    key = Column(String(50), nullable=False, index=True, comment="角色标识，如 admin")
    name = Column(String(100), nullable=False)
    remark = Column(String(500), default="")
    sort = Column(Integer, default=0)
    status = Column(String(20), nullable=False, default=Status.ENABLED.value)
    deleted = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=lambda: datetime.now(UTC))
    updated_at = Column(DateTime, default=lambda: datetime.now(UTC), onupdate=lambda: datetime.now(UTC))

    # 只读视图；授权增删通过 SysRoleMenu 行完成
    menus = relationship(
        "SysMenu",
        secondary="sys_role_menu",
        viewonly=True,
        lazy="selectin",
        order_by="SysMenu.id",
    )

    @property
    def is_enabled(self) -> bool:
        return self.status == Status.ENABLED.value


class SysRoleMenu(Base):
    """角色-菜单授权表，(role_id, menu_id) 唯一"""
    __tablename__ = "sys_role_menu"

    role_id = Column(Integer, ForeignKey("sys_role.id", ondelete="CASCADE"), primary_key=True)
    menu_id = Column(Integer, ForeignKey("sys_menu.id", ondelete="CASCADE"), primary_key=True)


class SysUser(Base):
    """用户表"""
    __tablename__ = "sys_user"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(50), unique=True, nullable=False, index=True)
    password_hash = Column(String(200), nullable=False)
    nickname = Column(String(100), default="")
    status = Column(String(20), nullable=False, default=Status.ENABLED.value)
    deleted = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=lambda: datetime.now(UTC))
    updated_at = Column(DateTime, default=lambda: datetime.now(UTC), onupdate=lambda: datetime.now(UTC))

    roles = relationship(
        "SysRole",
        secondary="sys_user_role",
        viewonly=True,
        lazy="selectin",
        order_by="SysRole.sort",
    )

    @property
    def is_enabled(self) -> bool:
        return self.status == Status.ENABLED.value and not self.deleted


class SysUserRole(Base):
    """用户-角色映射表"""
    __tablename__ = "sys_user_role"

    user_id = Column(Integer, ForeignKey("sys_user.id", ondelete="CASCADE"), primary_key=True)
    role_id = Column(Integer, ForeignKey("sys_role.id", ondelete="CASCADE"), primary_key=True)
