"""
Pytest 配置和共享 fixtures
"""
import os

# 测试进程不写本地数据库文件，也不在启动时写种子数据
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("SEED_ON_STARTUP", "false")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from fastapi.testclient import TestClient

from app.database import Base, get_db
from app.system import models  # noqa: F401
from app.system.models.menu import SysMenu, MenuType
from app.system.models.rbac import SysRole, SysRoleMenu, SysUser, SysUserRole
from app.system.services.permission_provider import RBACPermissionProvider
from app.security.auth import get_password_hash, create_access_token
from core.security.deriver import PermissionDeriver
from core.security.permission import permission_provider_registry
from app.main import app


@pytest.fixture(scope="function")
def db_engine():
    """创建内存数据库引擎"""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def session_factory(db_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=db_engine)


@pytest.fixture(scope="function")
def db_session(session_factory):
    """创建数据库会话"""
    session = session_factory()
    yield session
    session.close()


@pytest.fixture(scope="function")
def client(db_session, session_factory):
    """创建测试客户端，RBAC provider 指向测试库"""
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        # lifespan 注册的 provider 指向正式库，替换为测试库
        permission_provider_registry.set_provider(RBACPermissionProvider(session_factory))
        yield test_client
    app.dependency_overrides.clear()
    permission_provider_registry.clear()


@pytest.fixture
def deriver():
    """使用内置规则的推导器"""
    return PermissionDeriver()


# ============== 数据构造 helpers ==============

class Factory:
    """测试数据构造器"""

    def __init__(self, db):
        self.db = db

    def menu(self, *args, **kwargs):
        return make_menu(self.db, *args, **kwargs)

    def role(self, *args, **kwargs):
        return make_role(self.db, *args, **kwargs)

    def user(self, *args, **kwargs):
        return make_user(self.db, *args, **kwargs)


@pytest.fixture
def factory(db_session):
    return Factory(db_session)


def make_menu(db, name, menu_type=MenuType.MENU, parent_id=0, path=None, perms=None,
              status="ENABLED", sort=0, deleted=False):
    menu = SysMenu(
        name=name, menu_type=getattr(menu_type, "value", menu_type), parent_id=parent_id,
        path=path, perms=perms, status=status, sort=sort, deleted=deleted,
    )
    db.add(menu)
    db.flush()
    return menu


def make_role(db, key, name=None, status="ENABLED", menus=(), deleted=False):
    role = SysRole(key=key, name=name or key, status=status, deleted=deleted)
    db.add(role)
    db.flush()
    for menu in menus:
        db.add(SysRoleMenu(role_id=role.id, menu_id=menu.id))
    db.flush()
    return role


def make_user(db, username, roles=(), password="123456", status="ENABLED"):
    user = SysUser(
        username=username,
        password_hash=get_password_hash(password),
        nickname=username,
        status=status,
    )
    db.add(user)
    db.flush()
    for role in roles:
        db.add(SysUserRole(user_id=user.id, role_id=role.id))
    db.flush()
    return user


# ============== 认证相关 Fixtures ==============

@pytest.fixture
def admin_user(db_session):
    """拥有超级管理员角色（无任何菜单授权）的用户"""
    role = make_role(db_session, "admin", "超级管理员")
    user = make_user(db_session, "admin", roles=[role])
    db_session.commit()
    return user


@pytest.fixture
def admin_token(admin_user):
    return create_access_token(admin_user.id, ["admin"])


@pytest.fixture
def auth_headers(admin_token):
    """返回超级管理员认证的请求头"""
    return {"Authorization": f"Bearer {admin_token}"}


@pytest.fixture
def common_user(db_session):
    """普通角色用户：只有菜单列表与查询权限"""
    menu_page = make_menu(db_session, "菜单管理", path="/system/menu", perms="system:menu:list")
    query_btn = make_menu(db_session, "菜单查询", MenuType.BUTTON, parent_id=menu_page.id)
    role = make_role(db_session, "common", "普通角色", menus=[menu_page, query_btn])
    user = make_user(db_session, "common", roles=[role])
    db_session.commit()
    return user


@pytest.fixture
def common_headers(common_user):
    token = create_access_token(common_user.id, ["common"])
    return {"Authorization": f"Bearer {token}"}
