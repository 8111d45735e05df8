"""
认证路由 - 登录、个人资料（角色 + 权限）、用户导航菜单
"""
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from app.database import get_db
from app.security.auth import create_access_token, get_current_user
from app.system.models.rbac import SysUser
from app.system.schemas import LoginRequest, LoginResponse, ProfileResponse
from app.system.services.menu_service import MenuService
from app.system.services.rbac_service import PermissionService
from app.system.services.user_service import UserService

router = APIRouter(prefix="/auth", tags=["认证"])


@router.post("/login", response_model=LoginResponse)
def login(data: LoginRequest, db: Session = Depends(get_db)):
    """用户登录"""
    service = UserService(db)
    try:
        user = service.authenticate(data.username, data.password)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(e))
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="用户名或密码错误"
        )

    role_keys = PermissionService(db).get_user_role_keys(user.id)
    return LoginResponse(
        access_token=create_access_token(user.id, role_keys),
        user_id=user.id,
        username=user.username,
        roles=role_keys,
    )


@router.get("/profile", response_model=ProfileResponse)
def get_profile(
    current_user: SysUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """当前用户资料：角色 + 聚合权限（state 为 empty 时前端按无权限处理）"""
    return ProfileResponse(**UserService(db).get_profile(current_user))


@router.get("/routers")
def get_routers(
    current_user: SysUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """当前用户可见的导航菜单树（不含按钮）"""
    menus = PermissionService(db).get_user_menus(current_user.id)
    return MenuService(db).get_routers(menus)
