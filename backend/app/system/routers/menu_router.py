"""
菜单管理 API 路由
前缀: /system/menus
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from app.database import get_db
from app.security import permissions as P
from app.security.auth import require_permission
from app.system.exceptions import NotFoundError
from app.system.models.rbac import SysUser
from app.system.schemas import (
    MenuCreate, MenuUpdate, MenuMove, MenuResponse, MenuPermissionPreview,
    MenuRelocate, RepairReportResponse,
)
from app.system.services.menu_repair import MenuRepairService, SCOPE_BUTTON, SCOPE_PATH, SCOPE_PATH_PARENT
from app.system.services.menu_service import MenuService
from core.security.permission import permission_provider_registry

router = APIRouter(prefix="/system/menus", tags=["菜单管理"])


@router.get("", response_model=List[MenuResponse])
def list_menus(
    db: Session = Depends(get_db),
    current_user: SysUser = Depends(require_permission(P.MENU_LIST)),
):
    """获取全部菜单列表（扁平）"""
    service = MenuService(db)
    return [MenuResponse.model_validate(m) for m in service.get_menus(include_disabled=True)]


@router.get("/tree")
def get_menu_tree(
    include_buttons: bool = True,
    db: Session = Depends(get_db),
    current_user: SysUser = Depends(require_permission(P.MENU_LIST)),
):
    """获取完整菜单树（管理用）"""
    service = MenuService(db)
    return service.get_menu_tree(include_buttons=include_buttons)


@router.get("/{menu_id}", response_model=MenuResponse)
def get_menu(
    menu_id: int,
    db: Session = Depends(get_db),
    current_user: SysUser = Depends(require_permission(P.MENU_QUERY, P.MENU_LIST)),
):
    """获取菜单详情"""
    menu = MenuService(db).get_menu_by_id(menu_id)
    if not menu:
        raise HTTPException(status_code=404, detail="菜单不存在")
    return MenuResponse.model_validate(menu)


@router.get("/{menu_id}/permission", response_model=MenuPermissionPreview)
def preview_menu_permission(
    menu_id: int,
    db: Session = Depends(get_db),
    current_user: SysUser = Depends(require_permission(P.MENU_QUERY, P.MENU_LIST)),
):
    """预览菜单的推导权限标识与生效权限标识"""
    service = MenuService(db)
    try:
        menu = service.require_menu(menu_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return MenuPermissionPreview(
        menu_id=menu.id,
        perms=menu.perms,
        derived=service.derive_permission(menu),
        effective=service.effective_permission(menu),
    )


@router.post("", response_model=MenuResponse, status_code=201)
def create_menu(
    data: MenuCreate,
    db: Session = Depends(get_db),
    current_user: SysUser = Depends(require_permission(P.MENU_ADD)),
):
    """创建菜单"""
    service = MenuService(db)
    try:
        menu = service.create_menu(**data.model_dump())
        db.commit()
        return MenuResponse.model_validate(menu)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.put("/{menu_id}", response_model=MenuResponse)
def update_menu(
    menu_id: int,
    data: MenuUpdate,
    db: Session = Depends(get_db),
    current_user: SysUser = Depends(require_permission(P.MENU_EDIT)),
):
    """更新菜单（修改父级时检查环）"""
    service = MenuService(db)
    try:
        menu = service.update_menu(menu_id, **data.model_dump(exclude_unset=True))
        db.commit()
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    # perms / 状态变化影响所有用户的聚合结果
    permission_provider_registry.invalidate_all()
    return MenuResponse.model_validate(menu)


@router.put("/{menu_id}/move", response_model=MenuResponse)
def move_menu(
    menu_id: int,
    data: MenuMove,
    db: Session = Depends(get_db),
    current_user: SysUser = Depends(require_permission(P.MENU_EDIT)),
):
    """移动菜单到新的父级"""
    service = MenuService(db)
    try:
        menu = service.move_menu(menu_id, data.parent_id, sort=data.sort)
        db.commit()
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    permission_provider_registry.invalidate_all()
    return MenuResponse.model_validate(menu)


@router.put("/{menu_id}/toggle", response_model=MenuResponse)
def toggle_menu(
    menu_id: int,
    db: Session = Depends(get_db),
    current_user: SysUser = Depends(require_permission(P.MENU_EDIT)),
):
    """切换菜单启用状态"""
    service = MenuService(db)
    try:
        menu = service.toggle_status(menu_id)
        db.commit()
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    permission_provider_registry.invalidate_all()
    return MenuResponse.model_validate(menu)


@router.delete("/{menu_id}", status_code=204)
def delete_menu(
    menu_id: int,
    db: Session = Depends(get_db),
    current_user: SysUser = Depends(require_permission(P.MENU_REMOVE)),
):
    """删除菜单（有子菜单时拒绝）"""
    service = MenuService(db)
    try:
        service.delete_menu(menu_id)
        db.commit()
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    permission_provider_registry.invalidate_all()


# ========== 数据修复 ==========


def _finish_repair(report) -> RepairReportResponse:
    if report.changed:
        permission_provider_registry.invalidate_all()
    return RepairReportResponse(**report.to_dict())


@router.post("/repair/dedupe", response_model=RepairReportResponse)
def repair_dedupe(
    by_path: bool = Query(False, description="同时合并 path 相同但父级不同的节点"),
    db: Session = Depends(get_db),
    current_user: SysUser = Depends(require_permission(P.MENU_REPAIR)),
):
    """合并重复菜单"""
    scopes = [SCOPE_PATH_PARENT, SCOPE_BUTTON]
    if by_path:
        scopes.append(SCOPE_PATH)
    return _finish_repair(MenuRepairService(db).collapse_duplicates(scopes))


@router.post("/repair/prune", response_model=RepairReportResponse)
def repair_prune(
    kept_sort: Optional[int] = None,
    db: Session = Depends(get_db),
    current_user: SysUser = Depends(require_permission(P.MENU_REPAIR)),
):
    """删除空目录"""
    return _finish_repair(MenuRepairService(db).prune_empty_directories(kept_sort=kept_sort))


@router.post("/repair/backfill", response_model=RepairReportResponse)
def repair_backfill(
    db: Session = Depends(get_db),
    current_user: SysUser = Depends(require_permission(P.MENU_REPAIR)),
):
    """为缺少权限标识的菜单写入推导值"""
    return _finish_repair(MenuRepairService(db).backfill_permissions())


@router.post("/repair/grant-admin", response_model=RepairReportResponse)
def repair_grant_admin(
    db: Session = Depends(get_db),
    current_user: SysUser = Depends(require_permission(P.MENU_REPAIR)),
):
    """为超级管理员角色补全菜单授权"""
    try:
        report = MenuRepairService(db).grant_all_to_superuser()
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return _finish_repair(report)


@router.post("/repair/relocate", response_model=RepairReportResponse)
def repair_relocate(
    data: MenuRelocate,
    db: Session = Depends(get_db),
    current_user: SysUser = Depends(require_permission(P.MENU_REPAIR)),
):
    """迁移菜单路径"""
    report = MenuRepairService(db).relocate_path(
        data.old_path, data.new_path, component=data.component, name=data.name
    )
    return _finish_repair(report)
