from __future__ import annotations

import argparse
import importlib
import logging
import sys
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from config import get_settings_module

from src.site_gate.site_gate.database.bootstrap import apply_seed_sql, ensure_guard_account

logger = logging.getLogger("site_gate.scripts.seed_db")


def main() -> None:
    parser = argparse.ArgumentParser(description="Seed demo site, item categories and a guard login.")
    parser.add_argument("--username", default="guard")
    parser.add_argument("--password", default="guard123")
    parser.add_argument("--site", default="S001", help="site_code the guard works at")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(message)s")
    settings = importlib.import_module(get_settings_module())
    db_config = dict(settings.DB_CONFIG)

    apply_seed_sql(db_config, seed_path=REPO_ROOT / "database" / "seed.sql")
    ensure_guard_account(
        db_config, username=args.username, password=args.password, full_name="Demo Guard", site_code=args.site
    )
    logger.info("seeded %s/%s (guard=%s)", db_config.get("host"), db_config.get("database"), args.username)


if __name__ == "__main__":
    main()
