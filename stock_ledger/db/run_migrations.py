"""
Run the stock ledger's Alembic migrations without an alembic.ini.

    python -m stock_ledger.db.run_migrations upgrade head
    python -m stock_ledger.db.run_migrations downgrade -1
    python -m stock_ledger.db.run_migrations current

The API calls `main(["upgrade", "head"])` on startup when
RUN_MIGRATIONS_ON_STARTUP is set.
"""

import sys
from pathlib import Path
from typing import Callable, Dict, List, Tuple

from alembic import command
from alembic.config import Config

from stock_ledger.db.config import get_settings

MIGRATIONS_DIR = Path(__file__).resolve().parent / "migrations"

# command name -> (alembic function, default positional args)
COMMANDS: Dict[str, Tuple[Callable[..., None], List[str]]] = {
    "upgrade": (command.upgrade, ["head"]),
    "downgrade": (command.downgrade, ["-1"]),
    "current": (command.current, []),
    "history": (command.history, []),
    "heads": (command.heads, []),
    "stamp": (command.stamp, ["head"]),
}


def build_config() -> Config:
    """Alembic config pointing at the packaged migrations and the configured database."""
    cfg = Config()
    cfg.set_main_option("script_location", str(MIGRATIONS_DIR))
    # Offline mode only; env.py builds its own async engine online.
    cfg.set_main_option("sqlalchemy.url", get_settings().sync_database_url)
    return cfg


# PUBLIC_INTERFACE
def main(argv: List[str] | None = None) -> None:
    """Dispatch one Alembic command; exits with status 2 on unknown commands."""
    args = list(sys.argv[1:] if argv is None else argv)
    if not args:
        print(f"Usage: run_migrations <{'|'.join(COMMANDS)}> [args]")
        sys.exit(1)

    name, rest = args[0], args[1:]
    if name not in COMMANDS:
        print(f"Unsupported Alembic command: {name}")
        sys.exit(2)

    func, defaults = COMMANDS[name]
    func(build_config(), *(rest or defaults))


if __name__ == "__main__":
    main()
