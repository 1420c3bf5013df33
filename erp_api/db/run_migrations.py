"""
Run Alembic against the bundled migrations without an alembic.ini.

    python -m erp_api.db.run_migrations upgrade head
    python -m erp_api.db.run_migrations downgrade -1
    python -m erp_api.db.run_migrations current

The application calls ``main(["upgrade", "head"])`` on startup when
RUN_MIGRATIONS_ON_STARTUP is set.
"""

import logging
import sys
from pathlib import Path
from typing import Callable, Dict, List, Tuple

from alembic import command
from alembic.config import Config

from erp_api.db.config import get_settings

logger = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).resolve().parent / "migrations"

# command name -> (alembic function, default arguments)
_COMMANDS: Dict[str, Tuple[Callable[..., object], List[str]]] = {
    "upgrade": (command.upgrade, ["head"]),
    "downgrade": (command.downgrade, ["-1"]),
    "stamp": (command.stamp, ["head"]),
    "current": (command.current, []),
    "history": (command.history, []),
    "heads": (command.heads, []),
}


# PUBLIC_INTERFACE
def build_config() -> Config:
    """Alembic Config pointing at the bundled migrations and the configured database."""
    cfg = Config()
    cfg.set_main_option("script_location", str(MIGRATIONS_DIR))
    # Offline (SQL script) mode only; env.py opens its own async engine online.
    cfg.set_main_option("sqlalchemy.url", get_settings().sync_database_url)
    return cfg


# PUBLIC_INTERFACE
def main(argv: List[str] | None = None) -> None:
    """Dispatch an Alembic command given as argv, e.g. ["upgrade", "head"]."""
    args = list(sys.argv[1:] if argv is None else argv)
    if not args:
        print(f"Usage: run_migrations <{'|'.join(_COMMANDS)}> [args]")
        sys.exit(1)

    name, rest = args[0], args[1:]
    if name not in _COMMANDS:
        print(f"Unsupported Alembic command: {name}")
        sys.exit(2)

    func, defaults = _COMMANDS[name]
    logger.info("Alembic %s %s", name, " ".join(rest or defaults))
    func(build_config(), *(rest or defaults))


if __name__ == "__main__":
    main()
