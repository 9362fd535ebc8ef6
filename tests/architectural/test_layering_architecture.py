"""Architectural tests for the assessment engine package layout.

All checks use static filesystem/AST inspection to avoid import-time side
effects.
"""

from __future__ import annotations

import ast
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import pytest


PROJECT_ROOT = Path(__file__).resolve().parents[2]
PKG_DIR = PROJECT_ROOT / "assessment_engine"
LOGIC_DIR = PKG_DIR / "logic"
MODELS_DIR = PKG_DIR / "models"
ROUTES_DIR = PKG_DIR / "routes"
MIGRATIONS_DIR = PKG_DIR / "db" / "migrations"


@dataclass
class ParsedModule:
    path: Path
    tree: ast.AST


def parse_module_safe(path: Path) -> Optional[ParsedModule]:
    try:
        code = path.read_text(encoding="utf-8")
    except OSError:
        return None
    try:
        return ParsedModule(path=path, tree=ast.parse(code, filename=str(path)))
    except SyntaxError:
        return None


def py_files_under(*roots: Path) -> list[Path]:
    files: list[Path] = []
    for root in roots:
        if not root.exists():
            continue
        for p in root.rglob("*.py"):
            if "__pycache__" in p.parts:
                continue
            files.append(p)
    return files


def imported_modules(pm: ParsedModule) -> set[str]:
    names: set[str] = set()
    for node in ast.walk(pm.tree):
        if isinstance(node, ast.Import):
            names.update(alias.name for alias in node.names)
        elif isinstance(node, ast.ImportFrom) and node.module:
            names.add(node.module)
    return names


def _parsed(*roots: Path) -> list[ParsedModule]:
    parsed = [parse_module_safe(p) for p in py_files_under(*roots)]
    missing = [p for p, pm in zip(py_files_under(*roots), parsed) if pm is None]
    assert not missing, f"Modules failed to parse: {missing}"
    return [pm for pm in parsed if pm is not None]


def test_models_depend_on_nothing_above_them() -> None:
    """Models are leaves: no imports from logic, routes, http or db."""
    for pm in _parsed(MODELS_DIR):
        bad = {m for m in imported_modules(pm) if m.startswith(("assessment_engine.logic", "assessment_engine.routes", "assessment_engine.http", "assessment_engine.db"))}
        assert not bad, f"{pm.path.name} imports {sorted(bad)}"


def test_logic_is_framework_free() -> None:
    """Domain logic never imports FastAPI, routes or the HTTP layer."""
    for pm in _parsed(LOGIC_DIR):
        mods = imported_modules(pm)
        bad = {m for m in mods if m.split(".")[0] in {"fastapi", "starlette"} or m.startswith(("assessment_engine.routes", "assessment_engine.http"))}
        assert not bad, f"{pm.path.name} imports {sorted(bad)}"


def test_routes_do_not_issue_sql_directly() -> None:
    """Routes reach the database only through repository modules."""
    for pm in _parsed(ROUTES_DIR):
        mods = imported_modules(pm)
        assert "sqlalchemy" not in {m.split(".")[0] for m in mods}, f"{pm.path.name} imports sqlalchemy"
        assert "assessment_engine.db.base" not in mods


@pytest.mark.parametrize("module", ["repository_assessments.py", "repository_responses.py"])
def test_repository_modules_expose_data_access_functions(module: str) -> None:
    pm = parse_module_safe(LOGIC_DIR / module)
    assert pm is not None, f"Repository module missing: {module}"
    names = [n.name for n in ast.walk(pm.tree) if isinstance(n, ast.FunctionDef)]
    assert any(n.startswith(("get_", "list_", "insert_", "create_")) for n in names)


def test_route_module_defines_api_router() -> None:
    pm = parse_module_safe(ROUTES_DIR / "assessments.py")
    assert pm is not None
    has_router = False
    for node in ast.walk(pm.tree):
        if isinstance(node, ast.Call):
            fn = node.func
            name = fn.id if isinstance(fn, ast.Name) else (fn.attr if isinstance(fn, ast.Attribute) else None)
            if name == "APIRouter":
                has_router = True
                break
    assert has_router, "Expected APIRouter() instantiation in routes/assessments.py"


def test_migrations_present_for_both_stores() -> None:
    canonical = sorted(p.name for p in (MIGRATIONS_DIR / "canonical").glob("*.sql"))
    drafts = sorted(p.name for p in (MIGRATIONS_DIR / "drafts").glob("*.sql"))
    assert canonical and drafts
    schema = "\n".join(p.read_text(encoding="utf-8") for p in (MIGRATIONS_DIR / "canonical").glob("*.sql"))
    assert "CREATE TABLE" in schema and "idempotency_key" in schema


def test_modules_log_through_named_loggers() -> None:
    """Modules that log obtain their logger via logging.getLogger(__name__)."""
    for pm in _parsed(PKG_DIR):
        src = pm.path.read_text(encoding="utf-8")
        if "logger." not in src:
            continue
        assert "logging.getLogger(__name__)" in src, f"{pm.path.relative_to(PKG_DIR)} logs without a module logger"
