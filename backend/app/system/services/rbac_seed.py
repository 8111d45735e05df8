"""
RBAC 种子数据 - 初始化角色、角色-菜单授权、管理员账号

依赖菜单种子，需在 seed_menu_data 之后执行。
"""
from typing import List

from sqlalchemy.orm import Session

from app.config import settings
from app.system.models.menu import SysMenu
from app.system.models.rbac import SysRole, SysRoleMenu, SysUser, SysUserRole
from app.system.services.user_service import get_password_hash


# ========== Role Definitions ==========

SEED_ROLES = [
    {"key": settings.SUPERUSER_ROLE_KEY, "name": "超级管理员", "remark": "拥有所有权限", "sort": 1},
    {"key": "common", "name": "普通角色", "remark": "只读访问系统管理与日志", "sort": 2},
]

# ========== Role→Menu Mappings ==========
# None = 全部菜单；列表项为菜单 path 或 (父 path, 按钮名称)

ROLE_MENUS = {
    settings.SUPERUSER_ROLE_KEY: None,
    "common": [
        "/system",
        "/system/user", ("/system/user", "用户查询"),
        "/system/dict", ("/system/dict", "字典查询"),
        "/log",
        "/system/operlog",
    ],
}

# ========== Default Users ==========

SEED_USERS = [
    {"username": "admin", "password": "admin123", "nickname": "管理员", "roles": [settings.SUPERUSER_ROLE_KEY]},
]


def _resolve_menu_ids(db: Session, entries) -> List[int]:
    active = db.query(SysMenu).filter(SysMenu.deleted == False)  # noqa: E712
    if entries is None:
        return [m.id for m in active.all()]

    ids = []
    for entry in entries:
        if isinstance(entry, tuple):
            parent = active.filter(SysMenu.path == entry[0]).order_by(SysMenu.id).first()
            if parent is None:
                continue
            menu = active.filter(SysMenu.parent_id == parent.id, SysMenu.name == entry[1]).first()
        else:
            menu = active.filter(SysMenu.path == entry).order_by(SysMenu.id).first()
        if menu is not None:
            ids.append(menu.id)
    return ids


def seed_rbac_data(db: Session) -> dict:
    """Seed RBAC initial data. Idempotent."""
    stats = {"roles": 0, "grants": 0, "users": 0, "user_roles": 0}

    # 1. Roles
    roles = {}
    for role_data in SEED_ROLES:
        role = db.query(SysRole).filter(SysRole.key == role_data["key"], SysRole.deleted == False).first()  # noqa: E712
        if not role:
            role = SysRole(**role_data)
            db.add(role)
            db.flush()
            stats["roles"] += 1
        roles[role.key] = role

    # 2. Role→Menu grants (only missing rows)
    for role_key, entries in ROLE_MENUS.items():
        role = roles[role_key]
        current = {r[0] for r in db.query(SysRoleMenu.menu_id).filter(SysRoleMenu.role_id == role.id).all()}
        for menu_id in _resolve_menu_ids(db, entries):
            if menu_id not in current:
                db.add(SysRoleMenu(role_id=role.id, menu_id=menu_id))
                stats["grants"] += 1
    db.flush()

    # 3. Users + user roles
    for user_data in SEED_USERS:
        user = db.query(SysUser).filter(SysUser.username == user_data["username"]).first()
        if not user:
            user = SysUser(
                username=user_data["username"],
                password_hash=get_password_hash(user_data["password"]),
                nickname=user_data["nickname"],
            )
            db.add(user)
            db.flush()
            stats["users"] += 1
        for role_key in user_data["roles"]:
            role = roles[role_key]
            existing = db.query(SysUserRole).filter(
                SysUserRole.user_id == user.id, SysUserRole.role_id == role.id
            ).first()
            if not existing:
                db.add(SysUserRole(user_id=user.id, role_id=role.id))
                stats["user_roles"] += 1

    db.commit()
    return stats
