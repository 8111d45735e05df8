"""
scripts/repair_menus.py

Menu data repair CLI.

Collapses duplicate menus, prunes empty directories, backfills missing
permission strings, grants every menu to the superuser role and relocates
menu paths. Every command is idempotent and prints a per-item report.
"""
import argparse
import logging
import sys
from pathlib import Path
from typing import List

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from app.database import SessionLocal, init_db
from app.system.exceptions import NotFoundError
from app.system.services.menu_repair import (
    MenuRepairService, RepairReport, SCOPE_BUTTON, SCOPE_PATH, SCOPE_PATH_PARENT,
)


logger = logging.getLogger(__name__)


def setup_logging(level: str = "INFO"):
    """Setup logging configuration"""
    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )


def print_report(report: RepairReport) -> None:
    print(f"\n=== {report.operation} ===")
    for o in report.outcomes:
        target = f"menu {o.menu_id}" if o.menu_id is not None else "-"
        print(f"  [{o.status}] {o.action} {target} {o.detail}")
    print(f"applied={report.applied} skipped={report.skipped} failed={report.failed}")


def run_command(args, session_factory=SessionLocal) -> List[RepairReport]:
    """执行子命令，返回各操作的报告"""
    db = session_factory()
    try:
        service = MenuRepairService(db)
        if args.command == "dedupe":
            scopes = [SCOPE_PATH_PARENT, SCOPE_BUTTON]
            if args.by_path:
                scopes.append(SCOPE_PATH)
            return [service.collapse_duplicates(scopes)]
        if args.command == "backfill":
            return [service.backfill_permissions()]
        if args.command == "prune":
            return [service.prune_empty_directories(kept_sort=args.kept_sort)]
        if args.command == "grant-admin":
            return [service.grant_all_to_superuser()]
        if args.command == "relocate":
            return [service.relocate_path(args.old_path, args.new_path,
                                          component=args.component, name=args.name)]
        if args.command == "all":
            return service.run_all()
        raise ValueError(f"Unknown command: {args.command}")
    finally:
        db.close()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Menu data repair",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python scripts/repair_menus.py dedupe --by-path
  python scripts/repair_menus.py backfill
  python scripts/repair_menus.py relocate /system/log/operlog /system/operlog
  python scripts/repair_menus.py all
        """
    )

    parser.add_argument(
        "--database-url",
        default=None,
        help="Override DATABASE_URL from settings"
    )

    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")
    subparsers.required = True

    dedupe_parser = subparsers.add_parser("dedupe", help="Collapse duplicate menus (keep lowest id)")
    dedupe_parser.add_argument(
        "--by-path",
        action="store_true",
        help="Also collapse menus sharing a path under different parents"
    )

    subparsers.add_parser("backfill", help="Store derived perms for menus without one")

    prune_parser = subparsers.add_parser("prune", help="Delete directories without children")
    prune_parser.add_argument(
        "--kept-sort",
        type=int,
        default=None,
        help="Sort value for directories that are kept"
    )

    subparsers.add_parser("grant-admin", help="Grant every menu with perms to the superuser role")

    relocate_parser = subparsers.add_parser("relocate", help="Change a menu path")
    relocate_parser.add_argument("old_path")
    relocate_parser.add_argument("new_path")
    relocate_parser.add_argument("--component", default=None)
    relocate_parser.add_argument("--name", default=None)

    subparsers.add_parser("all", help="dedupe, prune, backfill and grant-admin")

    return parser


def main(argv=None):
    """CLI entry point"""
    parser = build_parser()
    args = parser.parse_args(argv)

    # Setup logging
    setup_logging(args.log_level)

    session_factory = SessionLocal
    engine = None
    if args.database_url:
        engine = create_engine(args.database_url)
        session_factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    init_db(engine)

    try:
        reports = run_command(args, session_factory)
    except NotFoundError as e:
        logger.error(f"Repair aborted: {e}")
        return 1

    for report in reports:
        print_report(report)
    return 1 if any(r.failed for r in reports) else 0


if __name__ == "__main__":
    sys.exit(main())
