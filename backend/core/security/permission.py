"""
core/security/permission.py — 权限标识模型 + 权限提供者接口

权限标识格式为 ``domain:resource:action``（如 ``system:user:list``），
或通配符 ``*:*:*``。校验时视为不透明、区分大小写的字符串：
只做精确匹配，唯一的特殊情况是完整通配符。

IPermissionProvider 由 app 层实现，通过 PermissionProviderRegistry 注册。
"""
from abc import ABC, abstractmethod
from typing import Iterable, List, Optional, Set
import threading


WILDCARD_PERMISSION = "*:*:*"
PERMISSION_SEPARATOR = ":"


def is_wildcard(permission: Optional[str]) -> bool:
    """是否为超级通配符"""
    return permission == WILDCARD_PERMISSION


def grants(held: Iterable[str], required: str) -> bool:
    """已持有的权限集合是否满足单个权限码（精确匹配或通配符）"""
    held = held if isinstance(held, (set, frozenset)) else set(held)
    return WILDCARD_PERMISSION in held or required in held


def grants_any(held: Iterable[str], required: Iterable[str]) -> bool:
    """OR 语义：满足任一权限码即通过"""
    held = held if isinstance(held, (set, frozenset)) else set(held)
    if WILDCARD_PERMISSION in held:
        return True
    return any(code in held for code in required)


def path_to_prefix(path: Optional[str]) -> str:
    """路由路径转权限前缀: '/system/user/' -> 'system:user'"""
    if not path:
        return ""
    segments = [seg for seg in path.strip().split("/") if seg]
    return PERMISSION_SEPARATOR.join(segments)


def strip_action(perms: Optional[str]) -> str:
    """去掉权限标识末尾的操作段: 'system:dept:list' -> 'system:dept'

    段数不足两段时无法得到前缀，返回空串。
    """
    if not perms:
        return ""
    parts = [p for p in perms.split(PERMISSION_SEPARATOR) if p]
    if len(parts) <= 1:
        return ""
    return PERMISSION_SEPARATOR.join(parts[:-1])


class IPermissionProvider(ABC):
    """权限提供者接口 — app 层实现此接口以对接动态 RBAC"""

    @abstractmethod
    def has_permission(self, user_id: int, permission_code: str) -> bool:
        """检查用户是否拥有指定权限码"""

    @abstractmethod
    def get_user_permissions(self, user_id: int) -> Set[str]:
        """获取用户所有权限码集合"""

    @abstractmethod
    def get_user_roles(self, user_id: int) -> List[str]:
        """获取用户所有（启用的）角色标识列表"""

    @abstractmethod
    def is_superuser(self, user_id: int) -> bool:
        """用户是否拥有超级管理员角色"""


class PermissionProviderRegistry:
    """权限提供者注册表 — 单例模式

    app 层在 lifespan 中注册实现：
        registry = PermissionProviderRegistry()
        registry.set_provider(RBACPermissionProvider(SessionLocal))
    """

    _instance: Optional["PermissionProviderRegistry"] = None
    _lock = threading.Lock()

    def __new__(cls) -> "PermissionProviderRegistry":
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = super().__new__(cls)
                    cls._instance._provider = None
        return cls._instance

    def set_provider(self, provider: IPermissionProvider) -> None:
        self._provider = provider

    def get_provider(self) -> Optional[IPermissionProvider]:
        return self._provider

    def has_provider(self) -> bool:
        return self._provider is not None

    def has_permission(self, user_id: int, permission_code: str) -> bool:
        """未注册 provider 时返回 False（失败即拒绝）"""
        if self._provider is None:
            return False
        return self._provider.has_permission(user_id, permission_code)

    def get_user_permissions(self, user_id: int) -> Set[str]:
        if self._provider is None:
            return set()
        return self._provider.get_user_permissions(user_id)

    def get_user_roles(self, user_id: int) -> List[str]:
        if self._provider is None:
            return []
        return self._provider.get_user_roles(user_id)

    def is_superuser(self, user_id: int) -> bool:
        if self._provider is None:
            return False
        return self._provider.is_superuser(user_id)

    def invalidate_user(self, user_id: int) -> None:
        """角色/授权变更后清除单个用户缓存（provider 不支持缓存时忽略）"""
        if self._provider is not None and hasattr(self._provider, "invalidate_user"):
            self._provider.invalidate_user(user_id)

    def invalidate_all(self) -> None:
        if self._provider is not None and hasattr(self._provider, "invalidate_all"):
            self._provider.invalidate_all()

    def clear(self) -> None:
        """清除注册（用于测试）"""
        self._provider = None


# 模块级单例
permission_provider_registry = PermissionProviderRegistry()

__all__ = [
    "WILDCARD_PERMISSION",
    "PERMISSION_SEPARATOR",
    "is_wildcard",
    "grants",
    "grants_any",
    "path_to_prefix",
    "strip_action",
    "IPermissionProvider",
    "PermissionProviderRegistry",
    "permission_provider_registry",
]
