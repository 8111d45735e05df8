"""
菜单管理 ORM 模型
"""
from datetime import datetime, UTC
import enum

from sqlalchemy import Column, Integer, String, Boolean, DateTime
from app.database import Base


class MenuType(str, enum.Enum):
    """菜单类型"""
    DIRECTORY = "DIRECTORY"
    MENU = "MENU"
    BUTTON = "BUTTON"


class Status(str, enum.Enum):
    """启用状态"""
    ENABLED = "ENABLED"
    DISABLED = "DISABLED"


ROOT_PARENT_ID = 0


class SysMenu(Base):
    __tablename__ = "sys_menu"

    id = Column(Integer, primary_key=True, autoincrement=True)
    # 0 表示根节点；树结构由约定保证，不设外键
    parent_id = Column(Integer, nullable=False, default=ROOT_PARENT_ID, index=True, comment="父菜单ID")
    name = Column(String(100), nullable=False, comment="菜单名称")
    menu_type = Column(String(20), nullable=False, default=MenuType.MENU.value, comment="类型: DIRECTORY|MENU|BUTTON")
    path = Column(String(200), nullable=True, comment="前端路由路径")
    component = Column(String(200), nullable=True, comment="前端组件路径")
    icon = Column(String(50), nullable=True, comment="图标名称")
    perms = Column(String(100), nullable=True, comment="权限标识")
    visible = Column(Boolean, default=True, comment="是否在菜单中显示")
    status = Column(String(20), nullable=False, default=Status.ENABLED.value, comment="ENABLED|DISABLED")
    sort = Column(Integer, default=0, comment="排序")
    deleted = Column(Boolean, default=False, nullable=False, comment="软删除标记")
    created_at = Column(DateTime, default=lambda: datetime.now(UTC))
    updated_at = Column(DateTime, default=lambda: datetime.now(UTC), onupdate=lambda: datetime.now(UTC))

    @property
    def is_enabled(self) -> bool:
        return self.status == Status.ENABLED.value

    def __repr__(self) -> str:
        return f"SysMenu(id={self.id}, name={self.name!r}, type={self.menu_type}, path={self.path!r}, perms={self.perms!r})"
