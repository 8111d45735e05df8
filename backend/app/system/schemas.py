"""
系统管理 Pydantic 模型 - API 输入输出验证
"""
from datetime import datetime
from typing import Optional, List

from pydantic import BaseModel, Field

from app.system.models.menu import MenuType, Status


# ---- Menu ----

class MenuCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100, description="菜单名称")
    menu_type: MenuType = Field(default=MenuType.MENU, description="类型: DIRECTORY|MENU|BUTTON")
    parent_id: int = Field(default=0, ge=0, description="父菜单ID，0 为根")
    path: Optional[str] = Field(None, max_length=200)
    component: Optional[str] = Field(None, max_length=200)
    icon: Optional[str] = Field(None, max_length=50)
    perms: Optional[str] = Field(None, max_length=100, description="权限标识，为空时按规则推导")
    visible: bool = Field(default=True)
    status: Status = Field(default=Status.ENABLED)
    sort: int = Field(default=0)


class MenuUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    menu_type: Optional[MenuType] = None
    parent_id: Optional[int] = Field(None, ge=0)
    path: Optional[str] = Field(None, max_length=200)
    component: Optional[str] = Field(None, max_length=200)
    icon: Optional[str] = Field(None, max_length=50)
    perms: Optional[str] = Field(None, max_length=100)
    visible: Optional[bool] = None
    status: Optional[Status] = None
    sort: Optional[int] = None


class MenuMove(BaseModel):
    parent_id: int = Field(..., ge=0, description="新父菜单ID，0 为根")
    sort: Optional[int] = Field(None, description="为空时排到同级末尾")


class MenuResponse(BaseModel):
    id: int
    parent_id: int
    name: str
    menu_type: str
    path: Optional[str] = None
    component: Optional[str] = None
    icon: Optional[str] = None
    perms: Optional[str] = None
    visible: bool
    status: str
    sort: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class MenuPermissionPreview(BaseModel):
    menu_id: int
    perms: Optional[str] = None
    derived: str
    effective: str


# ---- Role ----

class RoleCreate(BaseModel):
    key: str = Field(..., min_length=1, max_length=50, description="角色标识")
    name: str = Field(..., min_length=1, max_length=100, description="角色名称")
    remark: str = Field(default="", max_length=500)
    sort: int = Field(default=0)
    status: Status = Field(default=Status.ENABLED)
    menu_ids: List[int] = Field(default_factory=list, description="授权菜单ID列表")


class RoleUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    remark: Optional[str] = Field(None, max_length=500)
    sort: Optional[int] = None
    status: Optional[Status] = None
    menu_ids: Optional[List[int]] = Field(None, description="提供时整体替换授权")


class RoleResponse(BaseModel):
    id: int
    key: str
    name: str
    remark: str
    sort: int
    status: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    menu_count: int = 0

    model_config = {"from_attributes": True}


class RoleDetailResponse(RoleResponse):
    menu_ids: List[int] = []


class RoleMenuAssign(BaseModel):
    menu_ids: List[int] = Field(..., description="菜单ID列表")


class GrantChange(BaseModel):
    role_id: int
    added: List[int] = []
    removed: List[int] = []
    menu_ids: List[int] = []


# ---- User-Role ----

class UserRoleAssign(BaseModel):
    role_ids: List[int] = Field(..., description="角色ID列表")


class UserRoleResponse(BaseModel):
    user_id: int
    roles: List[RoleResponse] = []


class UserPermissionResponse(BaseModel):
    user_id: int
    roles: List[str] = []
    permissions: List[str] = []
    state: str


# ---- Repair ----

class MenuRelocate(BaseModel):
    old_path: str = Field(..., min_length=1)
    new_path: str = Field(..., min_length=1)
    component: Optional[str] = None
    name: Optional[str] = None


class RepairOutcomeResponse(BaseModel):
    menu_id: Optional[int] = None
    action: str
    status: str
    detail: str = ""


class RepairReportResponse(BaseModel):
    operation: str
    applied: int
    skipped: int
    failed: int
    outcomes: List[RepairOutcomeResponse] = []


# ---- Auth ----

class LoginRequest(BaseModel):
    username: str = Field(..., min_length=1, max_length=50)
    password: str = Field(..., min_length=1)


class LoginResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user_id: int
    username: str
    roles: List[str] = []


class ProfileResponse(BaseModel):
    user_id: int
    username: str
    nickname: Optional[str] = None
    roles: List[str] = []
    permissions: List[str] = []
    state: str
