"""
RBAC API 路由 - 角色管理 + 角色菜单授权 + 用户角色分配
前缀: /system/roles, /system/users
"""
from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from app.database import get_db
from app.security import permissions as P
from app.security.auth import require_permission
from app.system.exceptions import NotFoundError
from app.system.models.rbac import SysRole, SysUser
from app.system.schemas import (
    RoleCreate, RoleUpdate, RoleResponse, RoleDetailResponse, RoleMenuAssign, GrantChange,
    UserRoleAssign, UserRoleResponse, UserPermissionResponse,
)
from app.system.services.rbac_service import RoleService, PermissionService
from core.security.permission import permission_provider_registry


def _invalidate_role_users(service: RoleService, role_id: int) -> None:
    """角色授权变化后清除该角色下所有用户的权限缓存"""
    for user_id in service.get_role_user_ids(role_id):
        permission_provider_registry.invalidate_user(user_id)


def _role_response(role: SysRole, detail: bool = False):
    if detail:
        resp = RoleDetailResponse.model_validate(role)
        resp.menu_ids = [m.id for m in role.menus]
    else:
        resp = RoleResponse.model_validate(role)
    resp.menu_count = len(role.menus) if role.menus else 0
    return resp


# ========== Role Router ==========

role_router = APIRouter(prefix="/system/roles", tags=["角色管理"])


@role_router.get("", response_model=List[RoleResponse])
def list_roles(
    include_disabled: bool = False,
    db: Session = Depends(get_db),
    current_user: SysUser = Depends(require_permission(P.ROLE_LIST)),
):
    """获取角色列表"""
    service = RoleService(db)
    return [_role_response(r) for r in service.get_roles(include_disabled=include_disabled)]


@role_router.get("/{role_id}", response_model=RoleDetailResponse)
def get_role(
    role_id: int,
    db: Session = Depends(get_db),
    current_user: SysUser = Depends(require_permission(P.ROLE_QUERY, P.ROLE_LIST)),
):
    """获取角色详情（含授权菜单）"""
    role = RoleService(db).get_role_by_id(role_id)
    if not role:
        raise HTTPException(status_code=404, detail="角色不存在")
    return _role_response(role, detail=True)


@role_router.post("", response_model=RoleDetailResponse, status_code=201)
def create_role(
    data: RoleCreate,
    db: Session = Depends(get_db),
    current_user: SysUser = Depends(require_permission(P.ROLE_ADD)),
):
    """创建角色"""
    service = RoleService(db)
    try:
        role = service.create_role(**data.model_dump())
        db.commit()
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    db.refresh(role)
    return _role_response(role, detail=True)


@role_router.put("/{role_id}", response_model=RoleDetailResponse)
def update_role(
    role_id: int,
    data: RoleUpdate,
    db: Session = Depends(get_db),
    current_user: SysUser = Depends(require_permission(P.ROLE_EDIT)),
):
    """更新角色（提供 menu_ids 时整体替换授权）"""
    service = RoleService(db)
    try:
        role = service.update_role(role_id, **data.model_dump(exclude_unset=True))
        db.commit()
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    _invalidate_role_users(service, role_id)
    db.refresh(role)
    return _role_response(role, detail=True)


@role_router.put("/{role_id}/toggle", response_model=RoleResponse)
def toggle_role(
    role_id: int,
    db: Session = Depends(get_db),
    current_user: SysUser = Depends(require_permission(P.ROLE_EDIT)),
):
    """切换角色启用状态"""
    service = RoleService(db)
    try:
        role = service.toggle_status(role_id)
        db.commit()
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    _invalidate_role_users(service, role_id)
    return _role_response(role)


@role_router.delete("/{role_id}", status_code=204)
def delete_role(
    role_id: int,
    db: Session = Depends(get_db),
    current_user: SysUser = Depends(require_permission(P.ROLE_REMOVE)),
):
    """删除角色"""
    service = RoleService(db)
    try:
        user_ids = service.get_role_user_ids(role_id)
        service.delete_role(role_id)
        db.commit()
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    for user_id in user_ids:
        permission_provider_registry.invalidate_user(user_id)


@role_router.get("/{role_id}/menus", response_model=List[int])
def get_role_menus(
    role_id: int,
    db: Session = Depends(get_db),
    current_user: SysUser = Depends(require_permission(P.ROLE_QUERY, P.ROLE_LIST)),
):
    """获取角色授权的菜单 ID"""
    service = RoleService(db)
    try:
        service.require_role(role_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return service.get_grants(role_id)


def _grant_change(db: Session, role_id: int, apply) -> GrantChange:
    service = RoleService(db)
    try:
        diff = apply(service)
        db.commit()
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if diff.changed:
        _invalidate_role_users(service, role_id)
    return GrantChange(role_id=diff.role_id, added=diff.added, removed=diff.removed, menu_ids=diff.menu_ids)


@role_router.put("/{role_id}/menus", response_model=GrantChange)
def assign_role_menus(
    role_id: int,
    data: RoleMenuAssign,
    db: Session = Depends(get_db),
    current_user: SysUser = Depends(require_permission(P.ROLE_ASSIGN)),
):
    """整体替换角色授权（只应用差异）"""
    return _grant_change(db, role_id, lambda s: s.assign_menus(role_id, data.menu_ids))


@role_router.post("/{role_id}/menus", response_model=GrantChange)
def add_role_menus(
    role_id: int,
    data: RoleMenuAssign,
    db: Session = Depends(get_db),
    current_user: SysUser = Depends(require_permission(P.ROLE_ASSIGN)),
):
    """追加角色授权"""
    return _grant_change(db, role_id, lambda s: s.add_menus(role_id, data.menu_ids))


@role_router.delete("/{role_id}/menus", response_model=GrantChange)
def revoke_role_menus(
    role_id: int,
    data: RoleMenuAssign,
    db: Session = Depends(get_db),
    current_user: SysUser = Depends(require_permission(P.ROLE_ASSIGN)),
):
    """撤销部分角色授权"""
    return _grant_change(db, role_id, lambda s: s.revoke_menus(role_id, data.menu_ids))


# ========== User-Role Router ==========

user_role_router = APIRouter(prefix="/system/users", tags=["用户角色"])


@user_role_router.get("/{user_id}/roles", response_model=UserRoleResponse)
def get_user_roles(
    user_id: int,
    db: Session = Depends(get_db),
    current_user: SysUser = Depends(require_permission(P.USER_QUERY, P.USER_LIST)),
):
    """获取用户角色"""
    service = PermissionService(db)
    try:
        service.require_user(user_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return UserRoleResponse(
        user_id=user_id,
        roles=[_role_response(r) for r in service.get_user_roles(user_id)],
    )


@user_role_router.put("/{user_id}/roles")
def assign_user_roles(
    user_id: int,
    data: UserRoleAssign,
    db: Session = Depends(get_db),
    current_user: SysUser = Depends(require_permission(P.USER_ASSIGN)),
):
    """设置用户角色"""
    service = PermissionService(db)
    try:
        role_ids = service.assign_user_roles(user_id, data.role_ids)
        db.commit()
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))

    permission_provider_registry.invalidate_user(user_id)
    return {"message": "角色分配成功", "role_ids": role_ids}


@user_role_router.get("/{user_id}/permissions", response_model=UserPermissionResponse)
def get_user_permissions(
    user_id: int,
    db: Session = Depends(get_db),
    current_user: SysUser = Depends(require_permission(P.USER_QUERY, P.USER_LIST)),
):
    """获取用户聚合后的有效权限"""
    service = PermissionService(db)
    try:
        resolution = service.compute_permissions(user_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return UserPermissionResponse(
        user_id=user_id,
        roles=list(resolution.roles),
        permissions=resolution.to_list(),
        state=resolution.state.value,
    )
