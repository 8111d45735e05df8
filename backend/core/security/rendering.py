"""
core/security/rendering.py - 按权限条件渲染

render_gate 根据会话上下文决定一个 UI 元素如何呈现。权限不足时的四种处理：
- HIDE:     不渲染
- DISABLED: 渲染禁用控件并附带提示
- EMPTY:    渲染空状态占位
- CUSTOM:   渲染调用方提供的 fallback

仅用于展示，不能作为授权边界。
"""
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Iterable, List, Optional, TypeVar

from core.security.context import SessionPermissionContext

T = TypeVar("T")

DISABLED_TOOLTIP = "您没有此操作的权限，请联系管理员"
EMPTY_TEXT = "您没有访问此内容的权限"


class FallbackMode(str, Enum):
    HIDE = "hide"
    DISABLED = "disabled"
    EMPTY = "empty"
    CUSTOM = "custom"


@dataclass(frozen=True)
class RenderDecision:
    """
    渲染决策

    Attributes:
        visible: 是否渲染任何内容
        content: 要渲染的内容（原内容或 fallback）
        allowed: 权限判定结果
        mode: 权限不足时采用的处理方式，允许时为 None
        disabled: 是否以禁用状态渲染
        tooltip: 禁用提示
        placeholder: 空状态文案
    """

    visible: bool
    content: Any = None
    allowed: bool = False
    mode: Optional[FallbackMode] = None
    disabled: bool = False
    tooltip: Optional[str] = None
    placeholder: Optional[str] = None


def render_gate(
    context: SessionPermissionContext,
    permission: str,
    content: Any = None,
    mode: FallbackMode = FallbackMode.HIDE,
    fallback: Any = None,
    tooltip: str = DISABLED_TOOLTIP,
    empty_text: str = EMPTY_TEXT,
) -> RenderDecision:
    """根据权限决定渲染方式"""
    if context.has_permission(permission):
        return RenderDecision(visible=True, content=content, allowed=True)

    mode = FallbackMode(mode)
    if mode == FallbackMode.HIDE:
        return RenderDecision(visible=False, mode=mode)
    if mode == FallbackMode.DISABLED:
        return RenderDecision(visible=True, content=content, mode=mode, disabled=True, tooltip=tooltip)
    if mode == FallbackMode.EMPTY:
        return RenderDecision(visible=True, mode=mode, placeholder=empty_text)
    return RenderDecision(visible=fallback is not None, content=fallback, mode=mode)


def visible_items(
    context: SessionPermissionContext,
    items: Iterable[T],
    permission_of: Callable[[T], Optional[str]],
) -> List[T]:
    """过滤出可展示的条目；条目未声明权限时始终保留"""
    result = []
    for item in items:
        permission = permission_of(item)
        if not permission or context.has_permission(permission):
            result.append(item)
    return result


__all__ = [
    "FallbackMode",
    "RenderDecision",
    "render_gate",
    "visible_items",
    "DISABLED_TOOLTIP",
    "EMPTY_TEXT",
]
