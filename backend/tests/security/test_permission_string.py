"""
权限标识模型测试 - 精确匹配 + 通配符
"""
import pytest

from core.security.permission import (
    WILDCARD_PERMISSION, grants, grants_any, is_wildcard, path_to_prefix, strip_action,
    PermissionProviderRegistry, permission_provider_registry,
)


class TestGrants:
    """单个权限码匹配"""

    def test_exact_match(self):
        assert grants({"system:user:list"}, "system:user:list") is True

    def test_no_partial_or_prefix_match(self):
        held = {"system:user"}
        assert grants(held, "system:user:list") is False
        assert grants({"system:*:list"}, "system:user:list") is False

    def test_case_sensitive(self):
        assert grants({"System:User:List"}, "system:user:list") is False

    def test_wildcard_grants_everything(self):
        assert grants({WILDCARD_PERMISSION}, "mall:product:remove") is True

    def test_accepts_any_iterable(self):
        assert grants(["a:b:c"], "a:b:c") is True

    def test_empty_set_grants_nothing(self):
        assert grants(set(), "system:user:list") is False


class TestGrantsAny:
    """OR 语义"""

    def test_any_of_required(self):
        assert grants_any({"system:dict:query"}, ["system:dict:edit", "system:dict:query"]) is True

    def test_none_of_required(self):
        assert grants_any({"system:dict:query"}, ["system:dict:edit"]) is False

    def test_wildcard(self):
        assert grants_any({WILDCARD_PERMISSION}, ["x:y:z"]) is True


class TestHelpers:

    def test_is_wildcard(self):
        assert is_wildcard("*:*:*") is True
        assert is_wildcard("*:*") is False
        assert is_wildcard(None) is False

    @pytest.mark.parametrize("path,expected", [
        ("/system/operlog", "system:operlog"),
        ("/system/user/", "system:user"),
        ("system//dept", "system:dept"),
        ("/", ""),
        ("", ""),
        (None, ""),
    ])
    def test_path_to_prefix(self, path, expected):
        assert path_to_prefix(path) == expected

    @pytest.mark.parametrize("perms,expected", [
        ("system:dept:list", "system:dept"),
        ("system:dept", "system"),
        ("system", ""),
        ("", ""),
        (None, ""),
    ])
    def test_strip_action(self, perms, expected):
        assert strip_action(perms) == expected


class TestProviderRegistry:

    def test_singleton(self):
        assert PermissionProviderRegistry() is permission_provider_registry

    def test_without_provider_fails_closed(self):
        registry = PermissionProviderRegistry()
        previous = registry.get_provider()
        registry.clear()
        try:
            assert registry.has_provider() is False
            assert registry.has_permission(1, "system:user:list") is False
            assert registry.get_user_permissions(1) == set()
            assert registry.get_user_roles(1) == []
            assert registry.is_superuser(1) is False
            # 没有 provider 时失效调用为空操作
            registry.invalidate_user(1)
            registry.invalidate_all()
        finally:
            if previous is not None:
                registry.set_provider(previous)
