"""
MenuService 测试 - CRUD、环检测、移动、推导、树
"""
import pytest

from app.system.exceptions import BusinessRuleError, MenuCycleError, NotFoundError
from app.system.models.menu import MenuType, SysMenu
from app.system.models.rbac import SysRoleMenu
from app.system.services.menu_service import MenuService


@pytest.fixture
def service(db_session, deriver):
    return MenuService(db_session, deriver)


@pytest.fixture
def tree(factory, db_session):
    """
    系统管理(/system)
      ├─ 部门管理(/system/dept)
      │    └─ 删除
      └─ 用户管理(/system/user)
    """
    root = factory.menu("系统管理", MenuType.DIRECTORY, path="/system", sort=1)
    dept = factory.menu("部门管理", parent_id=root.id, path="/system/dept", sort=1)
    remove = factory.menu("删除", MenuType.BUTTON, parent_id=dept.id, sort=1)
    user = factory.menu("用户管理", parent_id=root.id, path="/system/user", sort=2)
    db_session.commit()
    return {"root": root, "dept": dept, "remove": remove, "user": user}


class TestMenuCrud:

    def test_create_menu(self, service, db_session):
        menu = service.create_menu("操作日志", MenuType.MENU, path="/system/operlog")
        db_session.commit()
        assert menu.id is not None
        assert menu.parent_id == 0
        assert menu.menu_type == "MENU"
        assert menu.perms is None

    def test_create_under_missing_parent(self, service):
        with pytest.raises(NotFoundError):
            service.create_menu("孤儿", parent_id=999)

    def test_empty_perms_stored_as_null(self, service):
        menu = service.create_menu("x", path="", perms="")
        assert menu.path is None
        assert menu.perms is None

    def test_update_menu(self, service, tree):
        menu = service.update_menu(tree["user"].id, name="账号管理", perms="system:user:list", status="DISABLED")
        assert menu.name == "账号管理"
        assert menu.perms == "system:user:list"
        assert menu.status == "DISABLED"

    def test_update_ignores_unknown_fields(self, service, tree):
        menu = service.update_menu(tree["user"].id, deleted=True, id=123)
        assert menu.deleted is False
        assert menu.id == tree["user"].id

    def test_update_parent_rejects_cycle(self, service, tree):
        with pytest.raises(MenuCycleError):
            service.update_menu(tree["root"].id, parent_id=tree["remove"].id)

    def test_delete_with_children_rejected(self, service, tree):
        with pytest.raises(BusinessRuleError):
            service.delete_menu(tree["dept"].id)

    def test_delete_soft_and_removes_grants(self, service, tree, factory, db_session):
        factory.role("common", menus=[tree["remove"]])
        service.delete_menu(tree["remove"].id)
        db_session.commit()

        assert service.get_menu_by_id(tree["remove"].id) is None
        assert db_session.get(SysMenu, tree["remove"].id).deleted is True
        assert db_session.query(SysRoleMenu).filter_by(menu_id=tree["remove"].id).count() == 0

    def test_require_missing(self, service):
        with pytest.raises(NotFoundError):
            service.require_menu(404)

    def test_toggle_status(self, service, tree):
        assert service.toggle_status(tree["user"].id).status == "DISABLED"
        assert service.toggle_status(tree["user"].id).status == "ENABLED"


class TestCycleDetection:

    def test_ancestors(self, service, tree):
        assert service.get_ancestor_ids(tree["remove"].id) == [tree["dept"].id, tree["root"].id]

    def test_self_parent_is_cycle(self, service, tree):
        assert service.would_create_cycle(tree["dept"].id, tree["dept"].id) is True

    def test_descendant_parent_is_cycle(self, service, tree):
        assert service.would_create_cycle(tree["root"].id, tree["remove"].id) is True

    def test_sibling_is_not_cycle(self, service, tree):
        assert service.would_create_cycle(tree["dept"].id, tree["user"].id) is False

    def test_root_is_never_cycle(self, service, tree):
        assert service.would_create_cycle(tree["dept"].id, 0) is False

    def test_existing_cycle_terminates(self, service, factory, db_session):
        a = factory.menu("A")
        b = factory.menu("B", parent_id=a.id)
        a.parent_id = b.id
        db_session.flush()
        assert service.get_ancestor_ids(a.id) == [b.id]


class TestMoveMenu:

    def test_move_appends_after_siblings(self, service, tree):
        moved = service.move_menu(tree["remove"].id, tree["user"].id)
        assert moved.parent_id == tree["user"].id
        assert moved.sort == 0

        other = service.create_menu("修改", MenuType.BUTTON, parent_id=tree["dept"].id, sort=7)
        moved = service.move_menu(other.id, tree["user"].id)
        assert moved.sort == tree["remove"].sort + 1

    def test_move_to_root_uses_max_sort(self, service, tree):
        moved = service.move_menu(tree["user"].id, 0)
        assert moved.parent_id == 0
        assert moved.sort == tree["root"].sort + 1

    def test_explicit_sort(self, service, tree):
        moved = service.move_menu(tree["remove"].id, tree["user"].id, sort=5)
        assert moved.sort == 5

    def test_same_parent_keeps_sort(self, service, tree):
        moved = service.move_menu(tree["user"].id, tree["root"].id)
        assert moved.sort == 2

    def test_move_under_descendant_rejected(self, service, tree):
        with pytest.raises(MenuCycleError):
            service.move_menu(tree["root"].id, tree["dept"].id)

    def test_move_under_self_rejected(self, service, tree):
        with pytest.raises(MenuCycleError):
            service.move_menu(tree["dept"].id, tree["dept"].id)

    def test_move_to_missing_parent(self, service, tree):
        with pytest.raises(NotFoundError):
            service.move_menu(tree["dept"].id, 999)


class TestDerivation:

    def test_button_derives_from_parent(self, service, tree):
        assert service.derive_permission(tree["remove"]) == "system:dept:remove"

    def test_effective_prefers_explicit(self, service, tree):
        tree["dept"].perms = "system:dept:list"
        assert service.effective_permission(tree["dept"]) == "system:dept:list"
        assert service.effective_permission(tree["user"]) == "system:user:list"


class TestMenuTree:

    def test_full_tree(self, service, tree):
        result = service.get_menu_tree()
        assert len(result) == 1
        root = result[0]
        assert [c["name"] for c in root["children"]] == ["部门管理", "用户管理"]
        assert root["children"][0]["children"][0]["name"] == "删除"

    def test_tree_without_buttons(self, service, tree):
        result = service.get_menu_tree(include_buttons=False)
        assert result[0]["children"][0]["children"] == []

    def test_routers_exclude_buttons_and_disabled(self, service, tree):
        tree["user"].status = "DISABLED"
        result = service.get_routers(service.get_menus())
        children = result[0]["children"]
        assert [c["name"] for c in children] == ["部门管理"]
        assert children[0]["children"] == []

    def test_routers_drop_empty_directories(self, service, factory):
        factory.menu("空目录", MenuType.DIRECTORY, path="/empty")
        assert service.get_routers(service.get_menus()) == []

    def test_build_tree_sorted(self, service, factory):
        b = factory.menu("B", sort=2)
        a = factory.menu("A", sort=1)
        result = service.build_tree([b, a])
        assert [n["name"] for n in result] == ["A", "B"]
