"""Behave environment hooks for assessment engine integration tests.

When `TEST_BASE_URL` is set the scenarios run over HTTP against that live
API. Otherwise the application is booted in-process behind FastAPI's
TestClient with the database named by `TEST_DATABASE_URL` (default: an
in-memory SQLite store). Each scenario gets a fresh token so job ids and
idempotency keys never collide across runs against a shared database.
"""

from __future__ import annotations

import os
import uuid
from typing import Any

import httpx
from fastapi.testclient import TestClient

from assessment_engine.config import AppConfig, DatabaseConfig, SimulationConfig
from assessment_engine.main import create_app


def before_all(context: Any) -> None:  # pragma: no cover - executed by Behave
    context.api_prefix = os.getenv("TEST_API_PREFIX", "/api/v1")
    base_url = os.getenv("TEST_BASE_URL", "").strip().rstrip("/")
    if base_url:
        context.client = httpx.Client(base_url=base_url, timeout=10.0)
        try:
            context.client.get("/health")
        except httpx.HTTPError as exc:
            raise AssertionError(f"API at {base_url} is not reachable: {exc}") from exc
        print(f"[env] running against live API {base_url}")
        return

    dsn = os.getenv("TEST_DATABASE_URL", "sqlite+pysqlite:///:memory:")
    app = create_app(AppConfig(database=DatabaseConfig(dsn=dsn), simulation=SimulationConfig()))
    context.client = TestClient(app)
    context.client.__enter__()
    print(f"[env] running in-process against {dsn}")


def after_all(context: Any) -> None:  # pragma: no cover - executed by Behave
    client = getattr(context, "client", None)
    if isinstance(client, TestClient):
        client.__exit__(None, None, None)
    elif client is not None:
        client.close()


def before_scenario(context: Any, scenario: Any) -> None:  # pragma: no cover - executed by Behave
    context.token = uuid.uuid4().hex[:8]
    context.vars = {}
    context.response = None
