from __future__ import annotations

import importlib
import logging
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from flask import Flask

from config import get_settings_module

from .common.datetime_utils import configure_site_timezone
from .common.http import register_error_handlers
from .container import Container, build_container
from .custody.controller import register as register_custody
from .database.bootstrap import apply_schema, apply_seed_sql, ensure_guard_account, list_tables
from .exit_gate.controller import register as register_exit_gate
from .guards.controller import register as register_guards
from .notifications.controller import register as register_notifications
from .reports.controller import register as register_reports
from .visits.controller import register as register_visits
from .workers.controller import register as register_workers

logger = logging.getLogger("site_gate")

_ROOT = Path(__file__).resolve().parents[3]


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def create_app(container: Optional[Container] = None) -> Flask:
    """Application factory. Pass a prebuilt container to skip MySQL wiring."""
    load_dotenv(override=False)
    app = Flask(__name__)

    settings_module = get_settings_module()
    settings = importlib.import_module(settings_module)
    app.secret_key = getattr(settings, "SECRET_KEY")
    app.config["DEBUG"] = bool(getattr(settings, "DEBUG", False))
    app.config["TESTING"] = bool(getattr(settings, "TESTING", False))

    _configure_logging(getattr(settings, "LOG_LEVEL", "INFO"))
    configure_site_timezone(getattr(settings, "SITE_TIMEZONE", None))

    if container is None:
        db_config = getattr(settings, "DB_CONFIG")
        logger.info(
            "settings=%s db=%s@%s:%s/%s",
            settings_module, db_config.get("user"), db_config.get("host"),
            db_config.get("port", 3306), db_config.get("database"),
        )

        if bool(getattr(settings, "AUTO_INIT_DB", False)):
            apply_schema(db_config, schema_path=_ROOT / "database" / "schema.sql")
            logger.info("schema ready (tables=%s)", len(list_tables(db_config)))
        if bool(getattr(settings, "AUTO_SEED_DB", False)):
            apply_seed_sql(db_config, seed_path=_ROOT / "database" / "seed.sql")
            ensure_guard_account(
                db_config,
                username=getattr(settings, "DEMO_GUARD_USERNAME", "guard"),
                password=getattr(settings, "DEMO_GUARD_PASSWORD", "guard123"),
                full_name="Demo Guard",
                site_code="S001",
            )
            logger.info("demo seed ready")

        container = build_container(db_config=db_config, settings=settings)

    register_error_handlers(app)
    register_guards(app, container)
    register_workers(app, container)
    register_visits(app, container)
    register_custody(app, container)
    register_exit_gate(app, container)
    register_reports(app, container)
    register_notifications(app, container)

    return app
