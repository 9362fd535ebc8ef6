from __future__ import annotations

import logging
from typing import Callable, Optional

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from sqlalchemy import text as sql_text
from sqlalchemy.exc import SQLAlchemyError

from assessment_engine.config import AppConfig, load_config
from assessment_engine.db.base import get_engine
from assessment_engine.db.migrations_runner import CANONICAL_MIGRATIONS, apply_migrations
from assessment_engine.errors import AssessmentEngineError
from assessment_engine.http.problem import (
    handle_engine_error,
    handle_http_exception,
    handle_request_validation_error,
    handle_unexpected_error,
)
from assessment_engine.http.request_id import RequestIdMiddleware
from assessment_engine.logging_setup import configure_logging
from assessment_engine.logic.simulation import WriteSimulator
from assessment_engine.routes import api_router

logger = logging.getLogger(__name__)


def _health_check() -> Callable[[], dict]:
    def check() -> dict:
        try:
            with get_engine().connect() as conn:
                conn.execute(sql_text("SELECT 1"))
            return {"status": "ok", "db": True}
        except SQLAlchemyError as e:
            logger.error("health.db_check_failed", exc_info=True)
            return {"status": "degraded", "db": False, "reason": str(e)}

    return check


def create_app(config: Optional[AppConfig] = None) -> FastAPI:
    """Build the canonical store API.

    Configures logging, binds the shared engine to ``database.dsn`` and applies
    the canonical migrations before any route can run.
    """
    configure_logging()
    cfg = config or load_config()

    engine = get_engine(cfg.database.dsn)
    applied = apply_migrations(engine, CANONICAL_MIGRATIONS)
    logger.info("startup.migrations_applied count=%s", len(applied))

    app = FastAPI(title="Assessment Engine")
    app.state.config = cfg
    app.state.simulator = WriteSimulator(cfg.simulation)

    app.add_exception_handler(HTTPException, handle_http_exception)
    app.add_exception_handler(RequestValidationError, handle_request_validation_error)
    app.add_exception_handler(AssessmentEngineError, handle_engine_error)
    app.add_exception_handler(Exception, handle_unexpected_error)
    app.add_middleware(RequestIdMiddleware)

    app.include_router(api_router, prefix="/api/v1")

    health_check = _health_check()

    @app.get("/health")
    def health():  # pragma: no cover - trivial
        return health_check()

    return app


# Intentionally do not instantiate the app at import time to prevent side effects.
