"""
core/security/context.py

会话权限上下文 - 一次会话解析出的角色与权限集合

显式区分三种状态：
- UNRESOLVED: 尚未获取权限（如登录后资料未返回）
- RESOLVED:   已解析且非空
- EMPTY:      已解析但没有任何权限

三种状态下只有 RESOLVED 可能授予权限；EMPTY 不会被当作"拥有全部权限"。
上下文是不可变值对象，由调用方显式传给渲染函数 / 请求中间件。
"""
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, Optional, Tuple
import logging

from core.security.permission import WILDCARD_PERMISSION

logger = logging.getLogger(__name__)


class ResolutionState(str, Enum):
    UNRESOLVED = "unresolved"
    RESOLVED = "resolved"
    EMPTY = "empty"


@dataclass(frozen=True)
class PermissionResolution:
    """
    权限聚合结果

    Attributes:
        permissions: 去重后的权限标识集合
        roles: 参与聚合的（启用）角色标识
        state: RESOLVED 或 EMPTY
    """

    permissions: FrozenSet[str] = frozenset()
    roles: Tuple[str, ...] = ()
    state: ResolutionState = ResolutionState.EMPTY

    @classmethod
    def from_permissions(cls, permissions: Iterable[str], roles: Iterable[str] = ()) -> "PermissionResolution":
        perms = frozenset(p for p in permissions if p)
        state = ResolutionState.RESOLVED if perms else ResolutionState.EMPTY
        return cls(permissions=perms, roles=tuple(roles), state=state)

    @property
    def is_empty(self) -> bool:
        return self.state == ResolutionState.EMPTY

    @property
    def has_wildcard(self) -> bool:
        return WILDCARD_PERMISSION in self.permissions

    def to_list(self) -> list:
        return sorted(self.permissions)


@dataclass(frozen=True)
class SessionPermissionContext:
    """
    客户端会话权限上下文

    Example:
        >>> ctx = SessionPermissionContext.anonymous()
        >>> ctx.has_permission("system:user:list")
        False
        >>> ctx = ctx.resolve(["system:user:list"], roles=["common"])
        >>> ctx.has_permission("system:user:list")
        True
    """

    user_id: Optional[int] = None
    username: Optional[str] = None
    token: Optional[str] = None
    roles: Tuple[str, ...] = ()
    permissions: FrozenSet[str] = frozenset()
    state: ResolutionState = ResolutionState.UNRESOLVED
    metadata: Dict[str, Any] = field(default_factory=dict, compare=False)

    @classmethod
    def anonymous(cls) -> "SessionPermissionContext":
        return cls()

    @classmethod
    def from_resolution(
        cls,
        user_id: int,
        resolution: PermissionResolution,
        username: Optional[str] = None,
        token: Optional[str] = None,
    ) -> "SessionPermissionContext":
        return cls(
            user_id=user_id,
            username=username,
            token=token,
            roles=tuple(resolution.roles),
            permissions=frozenset(resolution.permissions),
            state=resolution.state,
        )

    @classmethod
    def from_profile(cls, profile: Dict[str, Any], token: Optional[str] = None) -> "SessionPermissionContext":
        """由 /auth/profile 的响应体构造上下文"""
        user_id = profile.get("user_id", profile.get("id"))
        permissions = profile.get("permissions")
        if permissions is None:
            # 资料中缺少权限字段，视为尚未解析
            return cls(
                user_id=user_id,
                username=profile.get("username"),
                token=token,
                roles=tuple(profile.get("roles") or ()),
            )
        resolution = PermissionResolution.from_permissions(permissions, profile.get("roles") or ())
        return cls.from_resolution(user_id, resolution, profile.get("username"), token)

    def resolve(self, permissions: Iterable[str], roles: Iterable[str] = ()) -> "SessionPermissionContext":
        """返回一个已解析的新上下文"""
        resolution = PermissionResolution.from_permissions(permissions, roles)
        return replace(
            self,
            roles=resolution.roles,
            permissions=resolution.permissions,
            state=resolution.state,
        )

    def clear(self) -> "SessionPermissionContext":
        """登出：回到匿名、未解析状态"""
        return SessionPermissionContext.anonymous()

    @property
    def is_authenticated(self) -> bool:
        return self.user_id is not None

    @property
    def is_resolved(self) -> bool:
        return self.state != ResolutionState.UNRESOLVED

    @property
    def is_empty(self) -> bool:
        return self.state == ResolutionState.EMPTY

    def has_permission(self, permission: str) -> bool:
        """权限判定谓词（仅用于展示，服务端守卫才是授权边界）"""
        if self.state == ResolutionState.UNRESOLVED:
            return False
        if self.state == ResolutionState.EMPTY:
            logger.debug(f"No permissions resolved for user {self.user_id}, denying '{permission}'")
            return False
        if WILDCARD_PERMISSION in self.permissions:
            return True
        return permission in self.permissions

    def has_any_permission(self, *permissions: str) -> bool:
        return any(self.has_permission(p) for p in permissions)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "username": self.username,
            "roles": list(self.roles),
            "permissions": sorted(self.permissions),
            "state": self.state.value,
        }

    def __repr__(self) -> str:
        return (
            f"SessionPermissionContext(user_id={self.user_id}, username={self.username!r}, "
            f"state={self.state.value}, permissions={len(self.permissions)})"
        )


__all__ = [
    "ResolutionState",
    "PermissionResolution",
    "SessionPermissionContext",
]
