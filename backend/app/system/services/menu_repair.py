"""
菜单数据修复: 重复合并、空目录清理、权限补全、超级管理员补授权、路径迁移

每个修复操作返回 RepairReport，逐项记录结果；
每一项单独提交，中途失败时已完成的修正保留，重跑即可继续。
所有操作可重复执行，第二次运行不再产生变更。
"""
from dataclasses import dataclass, field
from itertools import groupby
from typing import Callable, Dict, Iterable, List, Optional
import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.system.exceptions import NotFoundError
from app.system.models.menu import SysMenu, MenuType
from app.system.models.rbac import SysRoleMenu
from app.system.services.menu_service import MenuService
from app.system.services.rbac_service import RoleService
from core.security.permission import path_to_prefix

logger = logging.getLogger(__name__)

APPLIED = "applied"
SKIPPED = "skipped"
FAILED = "failed"

SCOPE_PATH_PARENT = "path_parent"
SCOPE_BUTTON = "button"
SCOPE_PATH = "path"
DEFAULT_SCOPES = (SCOPE_PATH_PARENT, SCOPE_BUTTON)


@dataclass
class RepairOutcome:
    menu_id: Optional[int]
    action: str
    status: str
    detail: str = ""


@dataclass
class RepairReport:
    """一次修复操作的逐项结果"""

    operation: str
    outcomes: List[RepairOutcome] = field(default_factory=list)

    def add(self, menu_id: Optional[int], action: str, status: str, detail: str = "") -> RepairOutcome:
        outcome = RepairOutcome(menu_id=menu_id, action=action, status=status, detail=detail)
        self.outcomes.append(outcome)
        return outcome

    def _count(self, status: str) -> int:
        return sum(1 for o in self.outcomes if o.status == status)

    @property
    def applied(self) -> int:
        return self._count(APPLIED)

    @property
    def skipped(self) -> int:
        return self._count(SKIPPED)

    @property
    def failed(self) -> int:
        return self._count(FAILED)

    @property
    def changed(self) -> bool:
        return self.applied > 0

    def to_dict(self) -> Dict:
        return {
            "operation": self.operation,
            "applied": self.applied,
            "skipped": self.skipped,
            "failed": self.failed,
            "outcomes": [o.__dict__.copy() for o in self.outcomes],
        }


class MenuRepairService:
    """菜单修复服务"""

    def __init__(self, db: Session, menu_service: Optional[MenuService] = None):
        self.db = db
        self.menus = menu_service or MenuService(db)

    def _apply(self, report: RepairReport, menu_id: Optional[int], action: str,
               fn: Callable[[], str]) -> None:
        """执行单项修正并提交；失败时回滚该项并记录"""
        try:
            detail = fn()
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"[{report.operation}] {action} failed for menu {menu_id}: {e}")
            report.add(menu_id, action, FAILED, str(e))
            return
        logger.info(f"[{report.operation}] {action} menu {menu_id}: {detail}")
        report.add(menu_id, action, APPLIED, detail)

    def _active_menus(self) -> List[SysMenu]:
        return (
            self.db.query(SysMenu)
            .filter(SysMenu.deleted == False)  # noqa: E712
            .order_by(SysMenu.id)
            .all()
        )

    def _hard_delete(self, menu: SysMenu, survivor_id: Optional[int] = None) -> str:
        """先删除指向菜单的授权，再物理删除；子节点挂到 survivor 下"""
        grants = self.db.query(SysRoleMenu).filter(SysRoleMenu.menu_id == menu.id).delete()
        moved = 0
        lifted = False
        if survivor_id is not None:
            # survivor 位于被删节点子树内时，先提到被删节点的父级
            if menu.id in self.menus.get_ancestor_ids(survivor_id):
                survivor = self.db.get(SysMenu, survivor_id)
                survivor.parent_id = menu.parent_id
                self.db.flush()
                lifted = True
            moved = (
                self.db.query(SysMenu)
                .filter(SysMenu.parent_id == menu.id, SysMenu.id != survivor_id)
                .update({SysMenu.parent_id: survivor_id})
            )
        self.db.delete(menu)
        self.db.flush()
        detail = f"deleted '{menu.name}' ({grants} grants removed"
        if lifted:
            detail += f", {survivor_id} lifted to parent {menu.parent_id}"
        if survivor_id is not None:
            detail += f", {moved} children moved to {survivor_id}"
        return detail + ")"

    # ===== 重复合并 =====

    @staticmethod
    def _group_key(menu: SysMenu, scope: str):
        if scope == SCOPE_PATH_PARENT:
            return (menu.path, menu.parent_id) if menu.path else None
        if scope == SCOPE_BUTTON:
            if menu.path or not menu.perms:
                return None
            return (menu.parent_id, menu.perms)
        return menu.path or None

    def find_duplicates(self, scope: str = SCOPE_PATH_PARENT) -> Dict[object, List[SysMenu]]:
        """按范围分组，返回成员数 > 1 的分组（组内按 id 升序）"""
        if scope not in (SCOPE_PATH_PARENT, SCOPE_BUTTON, SCOPE_PATH):
            raise ValueError(f"未知的合并范围: {scope}")
        keyed = []
        for menu in self._active_menus():
            key = self._group_key(menu, scope)
            if key is not None:
                keyed.append((key, menu))
        keyed.sort(key=lambda item: (repr(item[0]), item[1].id))

        groups = {}
        for key, items in groupby(keyed, key=lambda item: item[0]):
            members = [m for _, m in items]
            if len(members) > 1:
                groups[key] = members
        return groups

    def collapse_duplicates(self, scopes: Iterable[str] = DEFAULT_SCOPES) -> RepairReport:
        """
        合并重复菜单，保留 id 最小的节点

        Args:
            scopes: path_parent - 同一父级下 path 相同；
                    button - 同一父级下无 path、perms 相同的按钮；
                    path - path 相同但父级不同

        被删除节点的授权先移除，其子节点挂到保留节点下。
        """
        report = RepairReport(operation="dedupe")
        for scope in scopes:
            for key, members in self.find_duplicates(scope).items():
                survivor = members[0]
                for loser in members[1:]:
                    self._apply(
                        report, loser.id, f"collapse:{scope}",
                        lambda loser=loser, survivor=survivor: self._hard_delete(loser, survivor.id)
                        + f", kept {survivor.id}",
                    )
        if not report.outcomes:
            report.add(None, "collapse", SKIPPED, "no duplicates")
        return report

    # ===== 空目录清理 =====

    def prune_empty_directories(self, menu_ids: Optional[Iterable[int]] = None,
                                kept_sort: Optional[int] = None) -> RepairReport:
        """
        删除没有未删除子节点的目录

        Args:
            menu_ids: 仅检查这些目录，默认全部目录
            kept_sort: 非空目录保留时设置的排序值，为空则不调整
        """
        report = RepairReport(operation="prune")
        q = self.db.query(SysMenu).filter(
            SysMenu.deleted == False,  # noqa: E712
            SysMenu.menu_type == MenuType.DIRECTORY.value,
        )
        if menu_ids is not None:
            q = q.filter(SysMenu.id.in_(list(menu_ids)))

        remaining = q.order_by(SysMenu.id).all()

        # 删除子目录后父目录可能变空，循环直到没有新的删除
        progress = True
        while progress:
            progress = False
            for directory in list(remaining):
                if self.menus.count_children(directory.id) > 0:
                    continue
                remaining.remove(directory)
                failed_before = report.failed
                self._apply(report, directory.id, "prune", lambda d=directory: self._hard_delete(d))
                if report.failed == failed_before:
                    progress = True

        for directory in remaining:
            children = self.menus.count_children(directory.id)
            if kept_sort is not None and directory.sort != kept_sort:
                def resort(d=directory, n=children):
                    d.sort = kept_sort
                    self.db.flush()
                    return f"kept '{d.name}' with {n} children, sort -> {kept_sort}"
                self._apply(report, directory.id, "resort", resort)
            else:
                report.add(directory.id, "prune", SKIPPED, f"{children} children")
        return report

    # ===== 权限补全 =====

    def backfill_permissions(self) -> RepairReport:
        """
        为缺少 perms 的节点写入推导值

        只处理自身或父级带 path 的节点；推导值在写入前一次算出。
        无 path 的节点若有无 path 的子节点（子节点从它的 perms 取前缀）也跳过，
        因此写入不会改变任何节点的有效权限。
        """
        report = RepairReport(operation="backfill")
        menus = self._active_menus()
        prefix_parents = {m.parent_id for m in menus if not path_to_prefix(m.path) and not m.perms}
        pending = []
        for menu in menus:
            if menu.perms:
                continue
            parent = self.menus.get_parent(menu)
            if not (path_to_prefix(menu.path) or (parent is not None and path_to_prefix(parent.path))):
                report.add(menu.id, "backfill", SKIPPED, "no path in chain")
                continue
            if not path_to_prefix(menu.path) and menu.id in prefix_parents:
                report.add(menu.id, "backfill", SKIPPED, "children derive from parent perms")
                continue
            pending.append((menu, self.menus.derive_permission(menu)))

        for menu, perms in pending:
            def fill(m=menu, p=perms):
                m.perms = p
                self.db.flush()
                return f"perms -> {p}"
            self._apply(report, menu.id, "backfill", fill)

        if not report.outcomes:
            report.add(None, "backfill", SKIPPED, "all menus have perms")
        return report

    # ===== 超级管理员补授权 =====

    def grant_all_to_superuser(self) -> RepairReport:
        """确保超级管理员角色拥有每个带 perms 的菜单授权，只插入缺失的授权"""
        report = RepairReport(operation="grant-admin")
        role = RoleService(self.db).get_superuser_role()
        if role is None:
            raise NotFoundError("超级管理员角色", "")

        current = {
            r[0] for r in self.db.query(SysRoleMenu.menu_id).filter(SysRoleMenu.role_id == role.id).all()
        }
        for menu in self._active_menus():
            if not menu.perms or menu.id in current:
                continue

            def grant(m=menu):
                self.db.add(SysRoleMenu(role_id=role.id, menu_id=m.id))
                self.db.flush()
                return f"granted {m.perms} to role '{role.key}'"
            self._apply(report, menu.id, "grant", grant)

        if not report.outcomes:
            report.add(None, "grant", SKIPPED, "superuser role already holds all grants")
        return report

    # ===== 路径迁移 =====

    def relocate_path(self, old_path: str, new_path: str, component: Optional[str] = None,
                      name: Optional[str] = None) -> RepairReport:
        """将 path 为 old_path 的节点改为 new_path（可同时修改组件和名称）"""
        report = RepairReport(operation="relocate")
        targets = (
            self.db.query(SysMenu)
            .filter(SysMenu.deleted == False, SysMenu.path == old_path)  # noqa: E712
            .order_by(SysMenu.id)
            .all()
        )
        if not targets:
            report.add(None, "relocate", SKIPPED, f"no menu at {old_path}")
            return report

        for menu in targets:
            def move(m=menu):
                m.path = new_path
                if component is not None:
                    m.component = component
                if name is not None:
                    m.name = name
                self.db.flush()
                return f"{old_path} -> {new_path}"
            self._apply(report, menu.id, "relocate", move)
        return report

    def run_all(self) -> List[RepairReport]:
        """依次执行合并、清理、补全、补授权"""
        reports = [
            self.collapse_duplicates(),
            self.prune_empty_directories(),
            self.backfill_permissions(),
        ]
        if RoleService(self.db).get_superuser_role() is not None:
            reports.append(self.grant_all_to_superuser())
        return reports
