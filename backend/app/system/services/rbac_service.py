"""
RBAC Service — 角色管理 + 角色菜单授权 + 用户权限聚合
"""
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Set
import logging

from sqlalchemy.orm import Session

from app.config import settings
from app.system.exceptions import BusinessRuleError, NotFoundError
from app.system.models.menu import SysMenu, Status
from app.system.models.rbac import SysRole, SysRoleMenu, SysUser, SysUserRole
from app.system.services.menu_service import get_deriver
from core.security.context import PermissionResolution
from core.security.deriver import PermissionDeriver
from core.security.permission import WILDCARD_PERMISSION

logger = logging.getLogger(__name__)

_ROLE_FIELDS = {"name", "remark", "sort", "status"}


def is_superuser_role(role: SysRole) -> bool:
    return role.key == settings.SUPERUSER_ROLE_KEY


@dataclass
class GrantDiff:
    """一次授权变更的差异"""

    role_id: int
    added: List[int] = field(default_factory=list)
    removed: List[int] = field(default_factory=list)
    menu_ids: List[int] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.added or self.removed)


class RoleService:
    """角色管理服务"""

    def __init__(self, db: Session):
        self.db = db

    def _active_query(self):
        return self.db.query(SysRole).filter(SysRole.deleted == False)  # noqa: E712

    def get_roles(self, include_disabled: bool = False) -> List[SysRole]:
        q = self._active_query()
        if not include_disabled:
            q = q.filter(SysRole.status == Status.ENABLED.value)
        return q.order_by(SysRole.sort, SysRole.id).all()

    def get_role_by_id(self, role_id: int) -> Optional[SysRole]:
        return self._active_query().filter(SysRole.id == role_id).first()

    def require_role(self, role_id: int) -> SysRole:
        role = self.get_role_by_id(role_id)
        if not role:
            raise NotFoundError("角色", role_id)
        return role

    def get_role_by_key(self, key: str) -> Optional[SysRole]:
        return self._active_query().filter(SysRole.key == key).first()

    def get_superuser_role(self) -> Optional[SysRole]:
        return self.get_role_by_key(settings.SUPERUSER_ROLE_KEY)

    def create_role(self, key: str, name: str, remark: str = "", sort: int = 0,
                    status=Status.ENABLED, menu_ids: Optional[Iterable[int]] = None) -> SysRole:
        if self.get_role_by_key(key):
            raise BusinessRuleError(f"角色标识 '{key}' 已存在")

        role = SysRole(
            key=key, name=name, remark=remark, sort=sort,
            status=getattr(status, "value", status),
        )
        self.db.add(role)
        self.db.flush()

        if menu_ids:
            self.assign_menus(role.id, menu_ids)
        return role

    def update_role(self, role_id: int, **kwargs) -> SysRole:
        role = self.require_role(role_id)
        if is_superuser_role(role):
            raise BusinessRuleError("不能修改超级管理员角色")

        menu_ids = kwargs.pop("menu_ids", None)
        for key, value in kwargs.items():
            if key not in _ROLE_FIELDS or value is None:
                continue
            setattr(role, key, getattr(value, "value", value))

        if menu_ids is not None:
            self.assign_menus(role_id, menu_ids)

        self.db.flush()
        return role

    def delete_role(self, role_id: int) -> None:
        role = self.require_role(role_id)
        if is_superuser_role(role):
            raise BusinessRuleError("不能删除超级管理员角色")

        self.db.query(SysRoleMenu).filter(SysRoleMenu.role_id == role_id).delete()
        self.db.query(SysUserRole).filter(SysUserRole.role_id == role_id).delete()
        role.deleted = True
        self.db.flush()

    def toggle_status(self, role_id: int) -> SysRole:
        role = self.require_role(role_id)
        if is_superuser_role(role):
            raise BusinessRuleError("不能修改超级管理员角色状态")
        role.status = Status.DISABLED.value if role.is_enabled else Status.ENABLED.value
        self.db.flush()
        return role

    # ===== 角色-菜单授权 =====

    def get_grants(self, role_id: int) -> List[int]:
        """角色当前授权的菜单 ID（升序）"""
        rows = self.db.query(SysRoleMenu.menu_id).filter(SysRoleMenu.role_id == role_id).all()
        return sorted(r[0] for r in rows)

    def _validate_menu_ids(self, menu_ids: Iterable[int]) -> Set[int]:
        wanted = set(menu_ids)
        if not wanted:
            return wanted
        found = {
            r[0] for r in self.db.query(SysMenu.id).filter(
                SysMenu.id.in_(wanted),
                SysMenu.deleted == False,  # noqa: E712
            ).all()
        }
        missing = sorted(wanted - found)
        if missing:
            raise NotFoundError("菜单", ", ".join(str(m) for m in missing))
        return wanted

    def assign_menus(self, role_id: int, menu_ids: Iterable[int]) -> GrantDiff:
        """
        整体替换角色授权

        计算 to_add = desired - current、to_remove = current - desired，
        在同一个事务内只应用差异，未变动的授权行始终存在。
        调用方负责 commit。
        """
        self.require_role(role_id)
        desired = self._validate_menu_ids(menu_ids)
        current = set(self.get_grants(role_id))

        to_add = sorted(desired - current)
        to_remove = sorted(current - desired)

        if to_remove:
            self.db.query(SysRoleMenu).filter(
                SysRoleMenu.role_id == role_id,
                SysRoleMenu.menu_id.in_(to_remove),
            ).delete()
        for menu_id in to_add:
            self.db.add(SysRoleMenu(role_id=role_id, menu_id=menu_id))
        self.db.flush()

        if to_add or to_remove:
            logger.info(f"Role {role_id} grants updated: +{to_add} -{to_remove}")
        return GrantDiff(role_id=role_id, added=to_add, removed=to_remove, menu_ids=sorted(desired))

    def add_menus(self, role_id: int, menu_ids: Iterable[int]) -> GrantDiff:
        """追加授权，已存在的忽略"""
        self.require_role(role_id)
        wanted = self._validate_menu_ids(menu_ids)
        current = set(self.get_grants(role_id))
        to_add = sorted(wanted - current)
        for menu_id in to_add:
            self.db.add(SysRoleMenu(role_id=role_id, menu_id=menu_id))
        self.db.flush()
        return GrantDiff(role_id=role_id, added=to_add, menu_ids=sorted(current | wanted))

    def revoke_menus(self, role_id: int, menu_ids: Iterable[int]) -> GrantDiff:
        """撤销部分授权，不存在的忽略"""
        self.require_role(role_id)
        current = set(self.get_grants(role_id))
        to_remove = sorted(current & set(menu_ids))
        if to_remove:
            self.db.query(SysRoleMenu).filter(
                SysRoleMenu.role_id == role_id,
                SysRoleMenu.menu_id.in_(to_remove),
            ).delete()
            self.db.flush()
        return GrantDiff(role_id=role_id, removed=to_remove, menu_ids=sorted(current - set(to_remove)))

    def get_role_user_ids(self, role_id: int) -> List[int]:
        rows = self.db.query(SysUserRole.user_id).filter(SysUserRole.role_id == role_id).all()
        return [r[0] for r in rows]


class PermissionService:
    """用户角色 + 权限聚合服务"""

    def __init__(self, db: Session, deriver: Optional[PermissionDeriver] = None):
        self.db = db
        self.deriver = deriver or get_deriver()

    # ===== 用户 =====

    def get_user(self, user_id: int) -> Optional[SysUser]:
        return self.db.query(SysUser).filter(
            SysUser.id == user_id,
            SysUser.deleted == False,  # noqa: E712
        ).first()

    def require_user(self, user_id: int) -> SysUser:
        user = self.get_user(user_id)
        if not user:
            raise NotFoundError("用户", user_id)
        return user

    def get_user_roles(self, user_id: int) -> List[SysRole]:
        """用户的启用角色"""
        return (
            self.db.query(SysRole)
            .join(SysUserRole, SysUserRole.role_id == SysRole.id)
            .filter(
                SysUserRole.user_id == user_id,
                SysRole.deleted == False,  # noqa: E712
                SysRole.status == Status.ENABLED.value,
            )
            .order_by(SysRole.sort, SysRole.id)
            .all()
        )

    def get_user_role_keys(self, user_id: int) -> List[str]:
        return [r.key for r in self.get_user_roles(user_id)]

    def is_superuser(self, user_id: int) -> bool:
        return any(is_superuser_role(r) for r in self.get_user_roles(user_id))

    def assign_user_roles(self, user_id: int, role_ids: Iterable[int]) -> List[int]:
        """整体替换用户角色（差异应用）"""
        self.require_user(user_id)
        desired = set(role_ids)
        if desired:
            found = {
                r[0] for r in self.db.query(SysRole.id).filter(
                    SysRole.id.in_(desired),
                    SysRole.deleted == False,  # noqa: E712
                ).all()
            }
            missing = sorted(desired - found)
            if missing:
                raise NotFoundError("角色", ", ".join(str(m) for m in missing))

        rows = self.db.query(SysUserRole.role_id).filter(SysUserRole.user_id == user_id).all()
        current = {r[0] for r in rows}
        to_add = sorted(desired - current)
        to_remove = sorted(current - desired)

        if to_remove:
            self.db.query(SysUserRole).filter(
                SysUserRole.user_id == user_id,
                SysUserRole.role_id.in_(to_remove),
            ).delete()
        for rid in to_add:
            self.db.add(SysUserRole(user_id=user_id, role_id=rid))
        self.db.flush()
        return sorted(desired)

    def add_user_role(self, user_id: int, role_id: int) -> None:
        existing = self.db.query(SysUserRole).filter(
            SysUserRole.user_id == user_id,
            SysUserRole.role_id == role_id,
        ).first()
        if not existing:
            self.db.add(SysUserRole(user_id=user_id, role_id=role_id))
            self.db.flush()

    def remove_user_role(self, user_id: int, role_id: int) -> None:
        self.db.query(SysUserRole).filter(
            SysUserRole.user_id == user_id,
            SysUserRole.role_id == role_id,
        ).delete()
        self.db.flush()

    # ===== 权限聚合 =====

    def get_role_menus(self, role_id: int) -> List[SysMenu]:
        """角色授权的启用菜单"""
        return (
            self.db.query(SysMenu)
            .join(SysRoleMenu, SysRoleMenu.menu_id == SysMenu.id)
            .filter(
                SysRoleMenu.role_id == role_id,
                SysMenu.deleted == False,  # noqa: E712
                SysMenu.status == Status.ENABLED.value,
            )
            .order_by(SysMenu.id)
            .all()
        )

    def _load_parents(self, menus: Iterable[SysMenu]) -> Dict[int, SysMenu]:
        parent_ids = {m.parent_id for m in menus if not m.perms and m.parent_id}
        if not parent_ids:
            return {}
        parents = self.db.query(SysMenu).filter(
            SysMenu.id.in_(parent_ids),
            SysMenu.deleted == False,  # noqa: E712
        ).all()
        return {p.id: p for p in parents}

    def compute_permissions(self, user_id: int) -> PermissionResolution:
        """
        聚合用户的有效权限

        对每个启用角色：超级管理员角色追加 '*:*:*'（不中断遍历）；
        每个启用的授权菜单贡献其 perms，缺失时使用推导值。
        没有任何权限时返回 EMPTY 状态，调用方按拒绝处理。
        """
        self.require_user(user_id)
        roles = self.get_user_roles(user_id)

        permissions: Set[str] = set()
        for role in roles:
            if is_superuser_role(role):
                permissions.add(WILDCARD_PERMISSION)

            menus = self.get_role_menus(role.id)
            parents = self._load_parents(menus)
            for menu in menus:
                if menu.perms:
                    permissions.add(menu.perms)
                else:
                    permissions.add(self.deriver.derive(menu, parents.get(menu.parent_id)))

        resolution = PermissionResolution.from_permissions(permissions, [r.key for r in roles])
        if resolution.is_empty:
            logger.warning(f"No permissions resolved for user {user_id} (roles={list(resolution.roles)})")
        return resolution

    def get_user_permissions(self, user_id: int) -> Set[str]:
        return set(self.compute_permissions(user_id).permissions)

    def get_effective_permissions(self, user_id: int) -> List[str]:
        return self.compute_permissions(user_id).to_list()

    def get_user_menus(self, user_id: int) -> List[SysMenu]:
        """用户可访问的启用菜单；超级管理员可访问全部"""
        if self.is_superuser(user_id):
            return (
                self.db.query(SysMenu)
                .filter(SysMenu.deleted == False, SysMenu.status == Status.ENABLED.value)  # noqa: E712
                .all()
            )
        menus: Dict[int, SysMenu] = {}
        for role in self.get_user_roles(user_id):
            for menu in self.get_role_menus(role.id):
                menus[menu.id] = menu
        return list(menus.values())
