"""
tests/cli/test_repair_menus_cli.py

Tests for the menu repair CLI.
"""
import pytest

from app.system.models.menu import MenuType, SysMenu
from scripts.repair_menus import build_parser, main, run_command


class TestParser:

    def test_requires_command(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])

    def test_relocate_arguments(self):
        args = build_parser().parse_args(
            ["relocate", "/system/log/operlog", "/system/operlog", "--component", "log/operlog/index"]
        )
        assert args.old_path == "/system/log/operlog"
        assert args.new_path == "/system/operlog"
        assert args.component == "log/operlog/index"
        assert args.name is None

    def test_dedupe_by_path_flag(self):
        assert build_parser().parse_args(["dedupe", "--by-path"]).by_path is True
        assert build_parser().parse_args(["dedupe"]).by_path is False


class TestRunCommand:

    def test_dedupe(self, session_factory, factory, db_session):
        factory.menu("A", path="/a")
        factory.menu("A", path="/a")
        db_session.commit()

        args = build_parser().parse_args(["dedupe"])
        reports = run_command(args, session_factory)

        assert [r.applied for r in reports] == [1]
        db_session.expire_all()
        assert db_session.query(SysMenu).count() == 1

    def test_backfill(self, session_factory, factory, db_session):
        page = factory.menu("部门管理", path="/system/dept")
        db_session.commit()

        run_command(build_parser().parse_args(["backfill"]), session_factory)

        db_session.expire_all()
        assert db_session.get(SysMenu, page.id).perms == "system:dept:list"

    def test_all_without_superuser_role(self, session_factory, factory, db_session):
        factory.menu("空目录", MenuType.DIRECTORY, path="/empty")
        db_session.commit()

        reports = run_command(build_parser().parse_args(["all"]), session_factory)

        assert [r.operation for r in reports] == ["dedupe", "prune", "backfill"]


class TestMain:

    def test_main_with_database_url(self, tmp_path, capsys):
        url = f"sqlite:///{tmp_path / 'menus.db'}"
        from sqlalchemy import create_engine
        from app.database import Base
        Base.metadata.create_all(bind=create_engine(url))

        assert main(["--database-url", url, "backfill"]) == 0
        assert "=== backfill ===" in capsys.readouterr().out

    def test_fresh_database_url_creates_tables(self, tmp_path, capsys):
        """指定的新库没有表时先建表"""
        url = f"sqlite:///{tmp_path / 'fresh.db'}"

        assert main(["--database-url", url, "dedupe"]) == 0
        assert "=== dedupe ===" in capsys.readouterr().out

        from sqlalchemy import create_engine, inspect
        tables = inspect(create_engine(url)).get_table_names()
        assert "sys_menu" in tables
        assert "sys_role_menu" in tables

    def test_grant_admin_without_role_fails(self, tmp_path):
        url = f"sqlite:///{tmp_path / 'menus.db'}"
        from sqlalchemy import create_engine
        from app.database import Base
        Base.metadata.create_all(bind=create_engine(url))

        assert main(["--database-url", url, "grant-admin"]) == 1
