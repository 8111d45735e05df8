"""
菜单种子数据 - 系统管理 / 日志管理 / 商城管理

部分按钮故意不填 perms，由推导规则生成（如 '角色新增' -> system:role:add）。
"""
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from app.system.models.menu import SysMenu, MenuType, ROOT_PARENT_ID


def _button(name: str, perms: Optional[str] = None, sort: int = 0) -> Dict:
    return {"name": name, "menu_type": MenuType.BUTTON.value, "perms": perms, "sort": sort}


SEED_MENUS: List[Dict] = [
    {
        "name": "系统管理", "menu_type": MenuType.DIRECTORY.value, "path": "/system", "icon": "Settings", "sort": 1,
        "children": [
            {
                "name": "用户管理", "menu_type": MenuType.MENU.value, "path": "/system/user",
                "component": "system/user/index", "icon": "User", "perms": "system:user:list", "sort": 1,
                "children": [
                    _button("用户查询", "system:user:query", 1),
                    _button("分配角色", "system:user:assign", 2),
                ],
            },
            {
                "name": "角色管理", "menu_type": MenuType.MENU.value, "path": "/system/role",
                "component": "system/role/index", "icon": "Shield", "perms": "system:role:list", "sort": 2,
                "children": [
                    _button("角色查询", "system:role:query", 1),
                    _button("角色新增", None, 2),
                    _button("角色修改", None, 3),
                    _button("角色删除", None, 4),
                    _button("分配权限", "system:role:assign", 5),
                ],
            },
            {
                "name": "菜单管理", "menu_type": MenuType.MENU.value, "path": "/system/menu",
                "component": "system/menu/index", "icon": "Menu", "perms": "system:menu:list", "sort": 3,
                "children": [
                    _button("菜单查询", None, 1),
                    _button("菜单新增", None, 2),
                    _button("菜单修改", None, 3),
                    _button("菜单删除", None, 4),
                    _button("菜单修复", "system:menu:repair", 5),
                ],
            },
            {
                "name": "字典管理", "menu_type": MenuType.MENU.value, "path": "/system/dict",
                "component": "system/dict/index", "icon": "Book", "sort": 4,
                "children": [
                    _button("字典查询", "system:dict:query", 1),
                    _button("字典修改", None, 2),
                ],
            },
        ],
    },
    {
        "name": "日志管理", "menu_type": MenuType.DIRECTORY.value, "path": "/log", "icon": "FileText", "sort": 2,
        "children": [
            {
                "name": "操作日志", "menu_type": MenuType.MENU.value, "path": "/system/operlog",
                "component": "log/operlog/index", "sort": 1,
                "children": [_button("日志导出", None, 1)],
            },
            {
                "name": "登录日志", "menu_type": MenuType.MENU.value, "path": "/system/logininfor",
                "component": "log/logininfor/index", "sort": 2,
                "children": [_button("日志导出", None, 1)],
            },
        ],
    },
    {
        "name": "商城管理", "menu_type": MenuType.DIRECTORY.value, "path": "/mall", "icon": "ShoppingCart", "sort": 3,
        "children": [
            {
                "name": "商品管理", "menu_type": MenuType.MENU.value, "path": "/mall/product",
                "component": "mall/product/index", "sort": 1,
                "children": [
                    _button("商品新增", None, 1),
                    _button("商品修改", None, 2),
                    _button("商品删除", None, 3),
                    _button("商品下架", None, 4),
                ],
            },
            {
                "name": "订单管理", "menu_type": MenuType.MENU.value, "path": "/mall/order",
                "component": "mall/order/index", "sort": 2,
                "children": [
                    _button("订单查询", None, 1),
                    _button("订单导出", None, 2),
                    _button("订单审核", None, 3),
                ],
            },
        ],
    },
]


def _find_existing(db: Session, parent_id: int, data: Dict) -> Optional[SysMenu]:
    q = db.query(SysMenu).filter(
        SysMenu.parent_id == parent_id,
        SysMenu.deleted == False,  # noqa: E712
    )
    if data.get("path"):
        return q.filter(SysMenu.path == data["path"]).first()
    return q.filter(SysMenu.name == data["name"]).first()


def _seed_nodes(db: Session, nodes: List[Dict], parent_id: int, stats: dict) -> None:
    for node in nodes:
        data = {k: v for k, v in node.items() if k != "children"}
        menu = _find_existing(db, parent_id, data)
        if menu is None:
            menu = SysMenu(parent_id=parent_id, **data)
            db.add(menu)
            db.flush()
            stats["menus"] += 1
        _seed_nodes(db, node.get("children", []), menu.id, stats)


def seed_menu_data(db: Session) -> dict:
    """Seed menu initial data. Idempotent."""
    stats = {"menus": 0}
    _seed_nodes(db, SEED_MENUS, ROOT_PARENT_ID, stats)
    db.commit()
    return stats
