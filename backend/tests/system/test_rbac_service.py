"""
RBAC Service 测试 - 角色管理、授权差异应用、用户权限聚合
"""
import pytest

from app.system.exceptions import BusinessRuleError, NotFoundError
from app.system.models.menu import MenuType
from app.system.models.rbac import SysRoleMenu, SysUserRole
from app.system.services.rbac_service import PermissionService, RoleService
from core.security.context import ResolutionState
from core.security.errors import Forbidden
from core.security.guard import check_access


@pytest.fixture
def roles(db_session):
    return RoleService(db_session)


@pytest.fixture
def perms(db_session, deriver):
    return PermissionService(db_session, deriver)


@pytest.fixture
def menus(factory, db_session):
    system = factory.menu("系统管理", MenuType.DIRECTORY, path="/system")
    dict_page = factory.menu("字典管理", parent_id=system.id, path="/system/dict")
    dict_query = factory.menu("字典查询", MenuType.BUTTON, parent_id=dict_page.id, perms="system:dict:query")
    dict_edit = factory.menu("字典修改", MenuType.BUTTON, parent_id=dict_page.id)
    operlog = factory.menu("操作日志", parent_id=system.id, path="/system/operlog")
    db_session.commit()
    return {"system": system, "dict": dict_page, "query": dict_query, "edit": dict_edit, "operlog": operlog}


class TestRoleService:

    def test_create_role_with_menus(self, roles, menus):
        role = roles.create_role("editor", "编辑", menu_ids=[menus["dict"].id, menus["query"].id])
        assert roles.get_grants(role.id) == sorted([menus["dict"].id, menus["query"].id])

    def test_duplicate_key(self, roles):
        roles.create_role("editor", "编辑")
        with pytest.raises(BusinessRuleError):
            roles.create_role("editor", "编辑2")

    def test_superuser_role_protected(self, roles, factory):
        admin = factory.role("admin")
        with pytest.raises(BusinessRuleError):
            roles.update_role(admin.id, name="x")
        with pytest.raises(BusinessRuleError):
            roles.delete_role(admin.id)
        with pytest.raises(BusinessRuleError):
            roles.toggle_status(admin.id)

    def test_update_role_replaces_grants(self, roles, menus):
        role = roles.create_role("editor", "编辑", menu_ids=[menus["dict"].id])
        roles.update_role(role.id, name="编辑员", menu_ids=[menus["operlog"].id])
        assert role.name == "编辑员"
        assert roles.get_grants(role.id) == [menus["operlog"].id]

    def test_delete_role_cleans_links(self, roles, menus, factory, db_session):
        role = roles.create_role("editor", "编辑", menu_ids=[menus["dict"].id])
        factory.user("u1", roles=[role])
        roles.delete_role(role.id)
        db_session.commit()
        assert roles.get_role_by_id(role.id) is None
        assert db_session.query(SysRoleMenu).filter_by(role_id=role.id).count() == 0
        assert db_session.query(SysUserRole).filter_by(role_id=role.id).count() == 0

    def test_toggle_status(self, roles):
        role = roles.create_role("editor", "编辑")
        assert roles.toggle_status(role.id).status == "DISABLED"
        assert roles.get_roles() == []
        assert [r.key for r in roles.get_roles(include_disabled=True)] == ["editor"]


class TestGrantAssignment:
    """整体替换授权：差异应用"""

    def test_assign_then_read_returns_exactly_desired(self, roles, menus, db_session):
        role = roles.create_role("editor", "编辑")
        desired = [menus["query"].id, menus["dict"].id]
        roles.assign_menus(role.id, desired)
        db_session.commit()
        assert roles.get_grants(role.id) == sorted(desired)

    def test_assign_applies_only_delta(self, roles, menus):
        role = roles.create_role("editor", "编辑", menu_ids=[menus["dict"].id, menus["query"].id])
        diff = roles.assign_menus(role.id, [menus["query"].id, menus["operlog"].id])
        assert diff.added == [menus["operlog"].id]
        assert diff.removed == [menus["dict"].id]
        assert diff.menu_ids == sorted([menus["query"].id, menus["operlog"].id])
        assert roles.get_grants(role.id) == diff.menu_ids

    def test_assign_same_set_is_noop(self, roles, menus):
        role = roles.create_role("editor", "编辑", menu_ids=[menus["dict"].id])
        diff = roles.assign_menus(role.id, [menus["dict"].id])
        assert diff.changed is False

    def test_assign_empty_clears(self, roles, menus):
        role = roles.create_role("editor", "编辑", menu_ids=[menus["dict"].id])
        roles.assign_menus(role.id, [])
        assert roles.get_grants(role.id) == []

    def test_assign_unknown_menu_leaves_grants_untouched(self, roles, menus):
        role = roles.create_role("editor", "编辑", menu_ids=[menus["dict"].id])
        with pytest.raises(NotFoundError):
            roles.assign_menus(role.id, [menus["dict"].id, 999])
        assert roles.get_grants(role.id) == [menus["dict"].id]

    def test_assign_unknown_role(self, roles, menus):
        with pytest.raises(NotFoundError):
            roles.assign_menus(999, [menus["dict"].id])

    def test_add_and_revoke_subsets(self, roles, menus):
        role = roles.create_role("editor", "编辑", menu_ids=[menus["dict"].id])
        diff = roles.add_menus(role.id, [menus["dict"].id, menus["query"].id])
        assert diff.added == [menus["query"].id]

        diff = roles.revoke_menus(role.id, [menus["dict"].id, 999])
        assert diff.removed == [menus["dict"].id]
        assert roles.get_grants(role.id) == [menus["query"].id]

    def test_revoke_then_readd_in_same_session(self, roles, menus):
        role = roles.create_role("editor", "编辑", menu_ids=[menus["dict"].id])
        roles.revoke_menus(role.id, [menus["dict"].id])
        roles.add_menus(role.id, [menus["dict"].id])
        assert roles.get_grants(role.id) == [menus["dict"].id]


class TestUserRoles:

    def test_assign_user_roles(self, perms, factory):
        r1 = factory.role("r1")
        r2 = factory.role("r2")
        user = factory.user("u1", roles=[r1])
        assert perms.assign_user_roles(user.id, [r2.id]) == [r2.id]
        assert perms.get_user_role_keys(user.id) == ["r2"]

    def test_assign_unknown_role(self, perms, factory):
        user = factory.user("u1")
        with pytest.raises(NotFoundError):
            perms.assign_user_roles(user.id, [999])

    def test_disabled_and_deleted_roles_ignored(self, perms, factory):
        active = factory.role("active")
        disabled = factory.role("disabled", status="DISABLED")
        deleted = factory.role("deleted", deleted=True)
        user = factory.user("u1", roles=[active, disabled, deleted])
        assert perms.get_user_role_keys(user.id) == ["active"]

    def test_add_and_remove_user_role(self, perms, factory):
        role = factory.role("r1")
        user = factory.user("u1")
        perms.add_user_role(user.id, role.id)
        perms.add_user_role(user.id, role.id)
        assert perms.get_user_role_keys(user.id) == ["r1"]
        perms.remove_user_role(user.id, role.id)
        assert perms.get_user_role_keys(user.id) == []


class TestComputePermissions:
    """用户有效权限聚合"""

    def test_superuser_without_grants_has_wildcard(self, perms, factory):
        """超级管理员角色没有任何菜单授权仍得到 '*:*:*'"""
        admin = factory.role("admin")
        user = factory.user("root", roles=[admin])

        resolution = perms.compute_permissions(user.id)

        assert resolution.permissions == frozenset({"*:*:*"})
        assert perms.is_superuser(user.id) is True
        check_access(("anything:at:all",), user.id, perms.is_superuser(user.id), resolution.permissions)

    def test_single_grant(self, perms, factory, menus):
        """仅授权字典查询的角色：只得到该权限，修改被拒绝"""
        role = factory.role("common", menus=[menus["query"]])
        user = factory.user("u1", roles=[role])

        resolution = perms.compute_permissions(user.id)

        assert resolution.permissions == frozenset({"system:dict:query"})
        with pytest.raises(Forbidden):
            check_access(("system:dict:edit",), user.id, perms.is_superuser(user.id), resolution.permissions)

    def test_superuser_loop_continues(self, perms, factory, menus):
        admin = factory.role("admin", menus=[menus["query"]])
        user = factory.user("root", roles=[admin])
        assert perms.get_user_permissions(user.id) == {"*:*:*", "system:dict:query"}

    def test_missing_perms_are_derived(self, perms, factory, menus):
        role = factory.role("common", menus=[menus["dict"], menus["edit"], menus["operlog"]])
        user = factory.user("u1", roles=[role])
        assert perms.get_effective_permissions(user.id) == [
            "system:dict:edit", "system:dict:list", "system:operlog:list",
        ]

    def test_union_over_roles(self, perms, factory, menus):
        r1 = factory.role("r1", menus=[menus["query"]])
        r2 = factory.role("r2", menus=[menus["operlog"], menus["query"]])
        user = factory.user("u1", roles=[r1, r2])
        assert perms.get_user_permissions(user.id) == {"system:dict:query", "system:operlog:list"}

    def test_disabled_role_contributes_nothing(self, perms, factory, menus):
        role = factory.role("common", status="DISABLED", menus=[menus["query"]])
        user = factory.user("u1", roles=[role])
        assert perms.compute_permissions(user.id).state == ResolutionState.EMPTY

    def test_disabled_admin_role_is_not_superuser(self, perms, factory):
        admin = factory.role("admin", status="DISABLED")
        user = factory.user("root", roles=[admin])
        assert perms.is_superuser(user.id) is False
        assert perms.get_user_permissions(user.id) == set()

    def test_disabled_and_deleted_menus_skipped(self, perms, factory, menus, db_session):
        menus["query"].status = "DISABLED"
        menus["operlog"].deleted = True
        role = factory.role("common", menus=[menus["query"], menus["operlog"], menus["dict"]])
        user = factory.user("u1", roles=[role])
        db_session.flush()
        assert perms.get_user_permissions(user.id) == {"system:dict:list"}

    def test_no_roles_is_empty_state(self, perms, factory):
        user = factory.user("nobody")
        resolution = perms.compute_permissions(user.id)
        assert resolution.state == ResolutionState.EMPTY
        assert resolution.permissions == frozenset()

    def test_unknown_user(self, perms):
        with pytest.raises(NotFoundError):
            perms.compute_permissions(404)

    def test_user_menus(self, perms, factory, menus):
        role = factory.role("common", menus=[menus["dict"], menus["query"]])
        user = factory.user("u1", roles=[role])
        assert {m.id for m in perms.get_user_menus(user.id)} == {menus["dict"].id, menus["query"].id}

        admin = factory.role("admin")
        root = factory.user("root", roles=[admin])
        assert len(perms.get_user_menus(root.id)) == len(menus)
