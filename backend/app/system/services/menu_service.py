"""
菜单管理 Service
"""
from functools import lru_cache
from typing import Dict, Iterable, List, Optional
import logging

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.config import settings
from app.system.exceptions import BusinessRuleError, MenuCycleError, NotFoundError
from app.system.models.menu import SysMenu, MenuType, Status, ROOT_PARENT_ID
from app.system.models.rbac import SysRoleMenu
from core.security.deriver import PermissionDeriver, load_action_rules

logger = logging.getLogger(__name__)

_MENU_FIELDS = {
    "name", "menu_type", "parent_id", "path", "component", "icon",
    "perms", "visible", "status", "sort",
}


@lru_cache(maxsize=1)
def get_deriver() -> PermissionDeriver:
    """按配置构造推导器（ACTION_RULES_FILE 为空时使用内置规则）"""
    return PermissionDeriver(load_action_rules(settings.ACTION_RULES_FILE))


def _enum_value(value):
    return getattr(value, "value", value)


class MenuService:
    """菜单管理服务"""

    def __init__(self, db: Session, deriver: Optional[PermissionDeriver] = None):
        self.db = db
        self.deriver = deriver or get_deriver()

    # ===== 查询 =====

    def _active_query(self):
        return self.db.query(SysMenu).filter(SysMenu.deleted == False)  # noqa: E712

    def get_menus(self, include_disabled: bool = True) -> List[SysMenu]:
        q = self._active_query()
        if not include_disabled:
            q = q.filter(SysMenu.status == Status.ENABLED.value)
        return q.order_by(SysMenu.parent_id, SysMenu.sort, SysMenu.id).all()

    def get_menu_by_id(self, menu_id: int) -> Optional[SysMenu]:
        return self._active_query().filter(SysMenu.id == menu_id).first()

    def require_menu(self, menu_id: int) -> SysMenu:
        menu = self.get_menu_by_id(menu_id)
        if not menu:
            raise NotFoundError("菜单", menu_id)
        return menu

    def get_children(self, parent_id: int) -> List[SysMenu]:
        return (
            self._active_query()
            .filter(SysMenu.parent_id == parent_id)
            .order_by(SysMenu.sort, SysMenu.id)
            .all()
        )

    def count_children(self, parent_id: int) -> int:
        return self._active_query().filter(SysMenu.parent_id == parent_id).count()

    def get_parent(self, menu: SysMenu) -> Optional[SysMenu]:
        if not menu.parent_id:
            return None
        return self.get_menu_by_id(menu.parent_id)

    def get_ancestor_ids(self, menu_id: int) -> List[int]:
        """自下而上的祖先 ID 列表（不含自身）"""
        ancestors: List[int] = []
        seen = {menu_id}
        current = self.get_menu_by_id(menu_id)
        while current is not None and current.parent_id:
            parent_id = current.parent_id
            if parent_id in seen:
                # 数据中已存在环，停止遍历
                logger.warning(f"Cycle detected in menu chain at {parent_id}")
                break
            ancestors.append(parent_id)
            seen.add(parent_id)
            current = self.get_menu_by_id(parent_id)
        return ancestors

    def would_create_cycle(self, menu_id: int, new_parent_id: int) -> bool:
        """将 menu_id 挂到 new_parent_id 下是否形成环"""
        if not new_parent_id:
            return False
        if new_parent_id == menu_id:
            return True
        return menu_id in self.get_ancestor_ids(new_parent_id)

    # ===== 变更 =====

    def _check_parent(self, menu_id: Optional[int], parent_id: int) -> None:
        if not parent_id:
            return
        if self.get_menu_by_id(parent_id) is None:
            raise NotFoundError("父菜单", parent_id)
        if menu_id is not None and self.would_create_cycle(menu_id, parent_id):
            raise MenuCycleError(menu_id, parent_id)

    def create_menu(self, name: str, menu_type=MenuType.MENU, parent_id: int = ROOT_PARENT_ID,
                    path: Optional[str] = None, component: Optional[str] = None,
                    icon: Optional[str] = None, perms: Optional[str] = None,
                    visible: bool = True, status=Status.ENABLED, sort: int = 0) -> SysMenu:
        parent_id = parent_id or ROOT_PARENT_ID
        self._check_parent(None, parent_id)

        menu = SysMenu(
            name=name, menu_type=_enum_value(menu_type), parent_id=parent_id,
            path=path or None, component=component, icon=icon,
            perms=perms or None, visible=visible, status=_enum_value(status), sort=sort,
        )
        self.db.add(menu)
        self.db.flush()
        return menu

    def update_menu(self, menu_id: int, **kwargs) -> SysMenu:
        menu = self.require_menu(menu_id)

        if "parent_id" in kwargs and kwargs["parent_id"] is not None:
            new_parent = kwargs["parent_id"] or ROOT_PARENT_ID
            if new_parent != menu.parent_id:
                self._check_parent(menu_id, new_parent)
            kwargs["parent_id"] = new_parent

        for key, value in kwargs.items():
            if key not in _MENU_FIELDS:
                continue
            if key in ("menu_type", "status"):
                if value is None:
                    continue
                value = _enum_value(value)
            if key in ("path", "perms") and value == "":
                value = None
            setattr(menu, key, value)

        self.db.flush()
        return menu

    def delete_menu(self, menu_id: int) -> None:
        """软删除菜单，并移除指向它的授权"""
        menu = self.require_menu(menu_id)

        child_count = self.count_children(menu_id)
        if child_count > 0:
            raise BusinessRuleError(f"菜单 '{menu.name}' 有 {child_count} 个子菜单，请先删除子菜单")

        self.db.query(SysRoleMenu).filter(SysRoleMenu.menu_id == menu_id).delete()
        menu.deleted = True
        self.db.flush()

    def toggle_status(self, menu_id: int) -> SysMenu:
        menu = self.require_menu(menu_id)
        menu.status = Status.DISABLED.value if menu.is_enabled else Status.ENABLED.value
        self.db.flush()
        return menu

    def next_sort(self, parent_id: int, exclude_id: Optional[int] = None) -> int:
        q = self.db.query(func.max(SysMenu.sort)).filter(
            SysMenu.deleted == False,  # noqa: E712
            SysMenu.parent_id == parent_id,
        )
        if exclude_id is not None:
            q = q.filter(SysMenu.id != exclude_id)
        current_max = q.scalar()
        return 0 if current_max is None else current_max + 1

    def move_menu(self, menu_id: int, new_parent_id: int, sort: Optional[int] = None) -> SysMenu:
        """
        移动菜单到新的父级

        Args:
            menu_id: 要移动的菜单
            new_parent_id: 新父级，0 为根
            sort: 显式排序值；为空时排到新同级的末尾

        Raises:
            NotFoundError: 菜单或父菜单不存在
            MenuCycleError: 新父级是自身或其子孙
        """
        menu = self.require_menu(menu_id)
        new_parent_id = new_parent_id or ROOT_PARENT_ID
        self._check_parent(menu_id, new_parent_id)

        if sort is None:
            if menu.parent_id == new_parent_id:
                sort = menu.sort
            else:
                sort = self.next_sort(new_parent_id, exclude_id=menu_id)

        menu.parent_id = new_parent_id
        menu.sort = sort
        self.db.flush()
        logger.info(f"Moved menu {menu_id} under {new_parent_id} (sort={sort})")
        return menu

    # ===== 权限推导 =====

    def derive_permission(self, menu: SysMenu) -> str:
        return self.deriver.derive(menu, self.get_parent(menu))

    def effective_permission(self, menu: SysMenu) -> str:
        """显式 perms 优先，否则使用推导值"""
        if menu.perms:
            return menu.perms
        return self.derive_permission(menu)

    # ===== 树 =====

    def get_menu_tree(self, include_buttons: bool = True, include_disabled: bool = True) -> List[Dict]:
        """管理用完整菜单树"""
        menus = self.get_menus(include_disabled=include_disabled)
        if not include_buttons:
            menus = [m for m in menus if m.menu_type != MenuType.BUTTON.value]
        return self.build_tree(menus)

    def get_routers(self, menus: Iterable[SysMenu]) -> List[Dict]:
        """用户导航树：仅启用、非按钮节点，按 sort 排序"""
        nodes = [
            m for m in menus
            if not m.deleted and m.is_enabled and m.menu_type != MenuType.BUTTON.value
        ]
        tree = self.build_tree(nodes)
        # 去掉没有子节点的空目录
        return [n for n in tree if n["menu_type"] != MenuType.DIRECTORY.value or n["children"]]

    @staticmethod
    def to_node(menu: SysMenu) -> Dict:
        return {
            "id": menu.id, "parent_id": menu.parent_id, "name": menu.name,
            "menu_type": menu.menu_type, "path": menu.path, "component": menu.component,
            "icon": menu.icon, "perms": menu.perms, "visible": menu.visible,
            "status": menu.status, "sort": menu.sort, "children": [],
        }

    def build_tree(self, menus: Iterable[SysMenu]) -> List[Dict]:
        """扁平列表 -> 树；父节点不在列表中的节点作为根"""
        ordered = sorted(menus, key=lambda m: (m.sort or 0, m.id))
        menu_map = {m.id: self.to_node(m) for m in ordered}

        tree = []
        for item in menu_map.values():
            parent_id = item["parent_id"]
            if parent_id and parent_id in menu_map and parent_id != item["id"]:
                menu_map[parent_id]["children"].append(item)
            else:
                tree.append(item)
        return tree
