"""
core/security - 安全模块

包含框架的核心安全组件：
- permission: 权限标识模型 + 权限提供者接口
- deriver: 菜单默认权限推导
- context: 会话权限上下文
- guard: 服务端权限守卫判定
- rendering: 按权限条件渲染

使用方式:
    >>> from core.security import default_deriver, check_access, SessionPermissionContext
    >>> ctx = SessionPermissionContext.anonymous().resolve(["system:user:list"])
    >>> ctx.has_permission("system:user:list")
    True
"""

# 权限标识模型 + 提供者接口
from core.security.permission import (
    WILDCARD_PERMISSION,
    is_wildcard,
    grants,
    grants_any,
    path_to_prefix,
    strip_action,
    IPermissionProvider,
    PermissionProviderRegistry,
    permission_provider_registry,
)

# 默认权限推导
from core.security.deriver import (
    ActionRule,
    PermissionDeriver,
    load_action_rules,
    default_deriver,
)

# 错误分类
from core.security.errors import AuthorizationError, Unauthenticated, Forbidden

# 会话上下文
from core.security.context import (
    ResolutionState,
    PermissionResolution,
    SessionPermissionContext,
)

# 守卫 + 条件渲染
from core.security.guard import check_access
from core.security.rendering import FallbackMode, RenderDecision, render_gate, visible_items

__all__ = [
    "WILDCARD_PERMISSION",
    "is_wildcard",
    "grants",
    "grants_any",
    "path_to_prefix",
    "strip_action",
    "IPermissionProvider",
    "PermissionProviderRegistry",
    "permission_provider_registry",
    "ActionRule",
    "PermissionDeriver",
    "load_action_rules",
    "default_deriver",
    "AuthorizationError",
    "Unauthenticated",
    "Forbidden",
    "ResolutionState",
    "PermissionResolution",
    "SessionPermissionContext",
    "check_access",
    "FallbackMode",
    "RenderDecision",
    "render_gate",
    "visible_items",
]
