"""Assessment engine package for the hiring workflow application.

This package exposes a small FastAPI application factory for the canonical
assessment store alongside the client-side engine: the assessment model,
validation and visibility evaluators, the builder controller, the draft store,
the reconciliation service and the runtime player. Business logic lives in
`assessment_engine/logic/` and route handlers in `assessment_engine/routes/`.
"""

from __future__ import annotations

from assessment_engine.main import create_app

__all__ = ["create_app"]
