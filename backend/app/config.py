"""
应用配置
从环境变量 / .env 读取配置
"""
from typing import Optional
from pydantic import ConfigDict
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """应用设置"""

    # 应用基础配置
    APP_NAME: str = "Mall Admin"
    LOG_LEVEL: str = "INFO"

    # 数据库配置
    DATABASE_URL: str = "sqlite:///./admin.db"

    # JWT 配置
    SECRET_KEY: str = "admin-secret-key-change-in-production"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 480

    # 权限配置
    SUPERUSER_ROLE_KEY: str = "admin"
    # 按钮操作推断规则文件，为空时使用内置规则
    ACTION_RULES_FILE: Optional[str] = None

    # 启动时写入种子数据
    SEED_ON_STARTUP: bool = True

    model_config = ConfigDict(env_file=".env", case_sensitive=True, extra="ignore")


# 全局设置实例
settings = Settings()
