from __future__ import annotations

import importlib
import logging
from typing import Optional

from dotenv import load_dotenv
from flask import Flask

from config import get_settings_module

from .common.log_setup import configure_logging
from .common.rate_limit import create_limiter
from .common.web import register_error_handlers
from .container import Container, build_container
from .core.constants import (
    FRAUD_WORKERS,
    POLICY_CACHE_TTL_SECONDS,
    SCAN_RATE_LIMIT,
    TOKEN_SWEEP_INTERVAL_SECONDS,
    TOKEN_TTL_SECONDS,
)
from .database.bootstrap import apply_schema, list_tables
from .attendance.controller import register as register_attendance
from .excuses.controller import register as register_excuses
from .policies.controller import register as register_policies
from .sessions.controller import register as register_sessions

logger = logging.getLogger(__name__)


def create_app(container: Optional[Container] = None) -> Flask:
    load_dotenv(override=False)
    app = Flask(__name__)

    settings_module = get_settings_module()
    settings = importlib.import_module(settings_module)
    app.secret_key = getattr(settings, "SECRET_KEY")
    db_config = getattr(settings, "DB_CONFIG")
    app.config["DEBUG"] = bool(getattr(settings, "DEBUG", False))
    app.config["TESTING"] = bool(getattr(settings, "TESTING", False))
    app.config["SCAN_RATE_LIMIT"] = getattr(settings, "SCAN_RATE_LIMIT", SCAN_RATE_LIMIT)

    configure_logging(getattr(settings, "LOG_LEVEL", "INFO"), getattr(settings, "LOG_FILE", None))
    logger.info(
        "starting classscan: settings=%s db=%s@%s:%s/%s",
        settings_module,
        db_config.get("user"),
        db_config.get("host"),
        db_config.get("port", 3306),
        db_config.get("database"),
    )

    if container is None:
        if bool(getattr(settings, "AUTO_INIT_DB", False)):
            apply_schema(db_config)
            logger.info("schema ready: tables=%s", len(list_tables(db_config)))

        container = build_container(
            db_config=db_config,
            token_ttl_seconds=int(getattr(settings, "TOKEN_TTL_SECONDS", TOKEN_TTL_SECONDS)),
            policy_cache_ttl_seconds=int(getattr(settings, "POLICY_CACHE_TTL_SECONDS", POLICY_CACHE_TTL_SECONDS)),
            token_sweep_interval_seconds=int(
                getattr(settings, "TOKEN_SWEEP_INTERVAL_SECONDS", TOKEN_SWEEP_INTERVAL_SECONDS)
            ),
            fraud_workers=int(getattr(settings, "FRAUD_WORKERS", FRAUD_WORKERS)),
        )

    if container.token_sweeper is not None and not app.config["TESTING"]:
        container.token_sweeper.start()

    app.extensions["classscan"] = container

    register_error_handlers(app)
    limiter = create_limiter(app, storage_uri=getattr(settings, "RATELIMIT_STORAGE_URI", "memory://"))

    register_attendance(app, container, limiter)
    register_sessions(app, container)
    register_policies(app, container)
    register_excuses(app, container)

    return app
