"""
core/security/deriver.py

默认权限标识推导 — 为缺少 perms 的菜单节点生成权限标识

推导顺序：
1. 节点自身 path -> 前缀（'/system/operlog' -> 'system:operlog'）
2. 父节点 path -> 前缀，否则父节点 perms 去掉末尾操作段
3. BUTTON：按名称匹配操作动词（首个命中生效，默认 execute）-> '{prefix}:{action}'
4. DIRECTORY / MENU -> '{prefix}:list'
5. 无任何前缀 -> 'system:menu:{id}'

推导只依赖节点及其父节点，结果确定且永不为空。
"""
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Iterable, List, Optional, Union
import logging
import re

import yaml

from core.security.permission import path_to_prefix, strip_action

logger = logging.getLogger(__name__)

DEFAULT_RULES_FILE = Path(__file__).parent / "action_rules.yaml"
DEFAULT_ACTION = "execute"
DEFAULT_MENU_ACTION = "list"
BUTTON_TYPE = "BUTTON"


@dataclass(frozen=True)
class ActionRule:
    """一条 (predicate, action) 推断规则"""

    action: str
    predicate: Callable[[str], bool]

    def matches(self, name: str) -> bool:
        return bool(self.predicate(name))

    @classmethod
    def from_patterns(cls, action: str, patterns: Iterable[str]) -> "ActionRule":
        """由正则列表构造规则（任一命中即匹配，忽略大小写）"""
        pattern_list = [p for p in patterns if p]
        if not pattern_list:
            raise ValueError(f"操作 '{action}' 至少需要一个匹配模式")
        regex = re.compile("|".join(f"(?:{p})" for p in pattern_list), re.IGNORECASE)
        return cls(action=action, predicate=lambda name: regex.search(name) is not None)


def load_action_rules(path: Optional[Union[str, Path]] = None) -> List[ActionRule]:
    """
    从 YAML 加载推断规则

    Args:
        path: 规则文件路径，默认使用包内 action_rules.yaml

    Returns:
        按文件顺序排列的规则列表
    """
    rules_file = Path(path) if path else DEFAULT_RULES_FILE
    with open(rules_file, "r", encoding="utf-8") as f:
        raw = yaml.safe_load(f) or []

    rules = []
    for entry in raw:
        rules.append(ActionRule.from_patterns(entry["action"], entry.get("patterns", [])))
    logger.debug(f"Loaded {len(rules)} action rules from {rules_file}")
    return rules


class PermissionDeriver:
    """
    默认权限推导器

    Example:
        >>> deriver = PermissionDeriver()
        >>> deriver.infer_action("删除")
        'remove'
    """

    def __init__(self, rules: Optional[Iterable[ActionRule]] = None):
        self._rules: List[ActionRule] = list(rules) if rules is not None else load_action_rules()

    @property
    def rules(self) -> List[ActionRule]:
        return list(self._rules)

    def infer_action(self, name: Optional[str]) -> str:
        """按名称推断按钮操作动词，未命中返回空串"""
        if not name:
            return ""
        for rule in self._rules:
            if rule.matches(name):
                return rule.action
        return ""

    def resolve_prefix(self, node: Any, parent: Any = None) -> str:
        prefix = path_to_prefix(getattr(node, "path", None))
        if prefix:
            return prefix
        if parent is None:
            return ""
        return path_to_prefix(getattr(parent, "path", None)) or strip_action(getattr(parent, "perms", None))

    def derive(self, node: Any, parent: Any = None) -> str:
        """
        推导节点的权限标识

        Args:
            node: 菜单节点（需有 id / menu_type / path / name 属性）
            parent: 父节点，可为 None

        Returns:
            非空权限标识
        """
        prefix = self.resolve_prefix(node, parent)
        if not prefix:
            logger.debug(f"Menu {getattr(node, 'id', None)} has no path in chain, using id placeholder")
            return f"system:menu:{getattr(node, 'id', None)}"

        menu_type = _type_value(getattr(node, "menu_type", None))
        if menu_type == BUTTON_TYPE:
            action = self.infer_action(getattr(node, "name", None)) or DEFAULT_ACTION
            return f"{prefix}:{action}"
        return f"{prefix}:{DEFAULT_MENU_ACTION}"

    def effective(self, node: Any, parent: Any = None) -> str:
        """节点显式 perms 优先，缺失时使用推导值"""
        explicit = getattr(node, "perms", None)
        if explicit:
            return explicit
        return self.derive(node, parent)


def _type_value(menu_type: Any) -> Optional[str]:
    # 兼容枚举和字符串
    return getattr(menu_type, "value", menu_type)


# 使用内置规则的默认实例
default_deriver = PermissionDeriver()

__all__ = [
    "ActionRule",
    "load_action_rules",
    "PermissionDeriver",
    "default_deriver",
    "DEFAULT_RULES_FILE",
]
