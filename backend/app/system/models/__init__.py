"""
系统管理 ORM 模型
"""
from app.system.models.menu import SysMenu, MenuType, Status, ROOT_PARENT_ID
from app.system.models.rbac import SysRole, SysRoleMenu, SysUser, SysUserRole

__all__ = [
    "SysMenu", "MenuType", "Status", "ROOT_PARENT_ID",
    "SysRole", "SysRoleMenu", "SysUser", "SysUserRole",
]
