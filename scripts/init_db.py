from __future__ import annotations

from pathlib import Path

from alembic import command
from alembic.config import Config
from sqlalchemy import inspect

from clubraffle.db.engine import make_engine


def upgrade_db(target_revision: str = "head") -> None:
    """Migrate the configured raffle database to ``target_revision``."""
    project_root = Path(__file__).resolve().parents[1]
    alembic_cfg = Config(str(project_root / "alembic.ini"))
    alembic_cfg.set_main_option("script_location", str(project_root / "alembic"))
    command.upgrade(alembic_cfg, target_revision)


def print_tables() -> None:
    engine = make_engine()
    tables = sorted(inspect(engine).get_table_names())
    print(f"Raffle database at {engine.url.render_as_string(hide_password=True)}")
    print("Tables:", ", ".join(tables))


def main() -> None:
    upgrade_db()
    print_tables()


if __name__ == "__main__":
    main()
