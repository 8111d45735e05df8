"""
Mall Admin 主应用入口
菜单驱动的 RBAC 权限后台
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.config import settings
from app.database import SessionLocal, init_db
from app.routers import auth
from app.system.exceptions import NotFoundError
from app.system.routers import menu_router, rbac_router
from core.security.errors import AuthorizationError

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用生命周期管理"""
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    # 初始化数据库
    init_db()

    # ========== RBAC: Register permission provider ==========
    from core.security.permission import permission_provider_registry
    from app.system.services.permission_provider import RBACPermissionProvider
    permission_provider_registry.set_provider(RBACPermissionProvider(SessionLocal))
    logger.info("RBAC PermissionProvider registered")

    # ========== Seed initial data ==========
    if settings.SEED_ON_STARTUP:
        from app.system.services.menu_seed import seed_menu_data
        from app.system.services.rbac_seed import seed_rbac_data
        seed_db = SessionLocal()
        try:
            menu_stats = seed_menu_data(seed_db)
            if any(menu_stats.values()):
                logger.info(f"Menu seed data initialized: {menu_stats}")
            rbac_stats = seed_rbac_data(seed_db)
            if any(rbac_stats.values()):
                logger.info(f"RBAC seed data initialized: {rbac_stats}")
        finally:
            seed_db.close()

    yield

    permission_provider_registry.clear()


# 创建应用
app = FastAPI(
    title=settings.APP_NAME,
    description="菜单驱动的角色权限管理后台",
    version="1.0.0",
    lifespan=lifespan
)

# CORS 配置
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # 生产环境应限制具体域名
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(AuthorizationError)
async def authorization_error_handler(request: Request, exc: AuthorizationError):
    """401 未认证 / 403 权限不足"""
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


# 注册路由
app.include_router(auth.router)
app.include_router(menu_router.router)
app.include_router(rbac_router.role_router)
app.include_router(rbac_router.user_role_router)


@app.get("/")
def root():
    """根路径"""
    return {
        "name": settings.APP_NAME,
        "version": "1.0.0",
    }


@app.get("/health")
def health_check():
    """健康检查"""
    return {"status": "healthy"}
