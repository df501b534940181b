"""
test_import_safety.py — import and layering checks.

Verifies that:
  1. Every estimator module imports cleanly (no circular imports, no DB
     connection made at import time).
  2. The pure compute engines never reference the database session, the
     request layer or the HTTP client.
  3. Module-level constants the rest of the system relies on are intact.

No database, network, or external services are required.
"""

import sys
import os
import inspect
import importlib
import pytest

_BACKEND_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if _BACKEND_DIR not in sys.path:
    sys.path.insert(0, _BACKEND_DIR)


# ---------------------------------------------------------------------------
# Every module imports
# ---------------------------------------------------------------------------

# Pure computation: no I/O imports allowed
_PURE_ENGINE_MODULES = [
    "estimator.services.geometry_engine",
    "estimator.services.elevation_engine",
    "estimator.services.job_totals_engine",
    "estimator.services.pricing_engine",
    "estimator.services.pricing_config",
    "estimator.services.confidence_filter",
]

_SERVICE_MODULES = [
    "estimator.services.errors",
    "estimator.services.stores",
    "estimator.services.detection_resolver",
    "estimator.services.perf_monitor",
    "estimator.services.logging_config",
    "estimator.services.middleware",
    "estimator.services.estimate_export",
    "estimator.services.redetect_client",
    "estimator.services.takeoff_pipeline",
    "estimator.services.sql_stores",
]

_MODEL_AND_APP_MODULES = [
    "estimator.config",
    "estimator.db",
    "estimator.models.domain",
    "estimator.models.orm_models",
    "estimator.models.takeoff_schema",
    "estimator.api.deps",
    "estimator.api.detection_routes",
    "estimator.api.takeoff_routes",
    "estimator.main",
    "estimator.workers.celery_app",
    "estimator.workers.tasks",
]


class TestModuleImports:
    """All modules must import without circular import errors."""

    @pytest.mark.parametrize(
        "module_path", _PURE_ENGINE_MODULES + _SERVICE_MODULES + _MODEL_AND_APP_MODULES
    )
    def test_module_imports(self, module_path):
        try:
            mod = importlib.import_module(module_path)
        except Exception as e:
            pytest.fail(f"{module_path} raised on import: {type(e).__name__}: {e}")
        assert mod is not None


class TestEngineLayering:
    """Engines are pure functions of their inputs; stores do the I/O."""

    @pytest.mark.parametrize("module_path", _PURE_ENGINE_MODULES)
    def test_engine_has_no_io_dependencies(self, module_path):
        src = inspect.getsource(importlib.import_module(module_path))
        for forbidden in ("AsyncSession", "get_db", "httpx", "fastapi", "sqlalchemy"):
            assert forbidden not in src, f"{module_path} must not depend on {forbidden}"

    def test_resolver_depends_only_on_store_protocols(self):
        import estimator.services.detection_resolver as resolver
        src = inspect.getsource(resolver)
        assert "sql_stores" not in src
        assert "AsyncSession" not in src


class TestConstants:

    def test_calculation_version_set(self):
        from estimator.services.job_totals_engine import CALCULATION_VERSION, SF_PER_SQUARE
        assert CALCULATION_VERSION
        assert SF_PER_SQUARE == 100.0

    def test_documented_pricing_defaults(self):
        from estimator.services import pricing_config as pc
        assert pc.DEFAULT_MARKUP_PERCENT == 35.0
        assert pc.DEFAULT_LI_RATE_PERCENT == 12.65
        assert pc.DEFAULT_UNEMPLOYMENT_RATE_PERCENT == 6.60
        assert pc.DEFAULT_INSURANCE_RATE_PER_1000 == 24.38

    def test_celery_task_names(self):
        from estimator.workers.celery_app import celery_app
        import estimator.workers.tasks  # noqa: F401
        assert "tasks.recalculate_job" in celery_app.tasks
        assert "tasks.redetect_page" in celery_app.tasks

    def test_celery_queues(self):
        from estimator.workers.celery_app import celery_app
        routes = celery_app.conf.task_routes
        assert routes["tasks.recalculate_job"]["queue"] == "quantities"
        assert routes["tasks.redetect_page"]["queue"] == "redetection"

    def test_detection_tables_share_columns(self):
        from estimator.models.orm_models import AiOriginalDetection, DraftDetection, ValidatedDetection
        columns = [set(m.__table__.columns.keys()) for m in (DraftDetection, ValidatedDetection, AiOriginalDetection)]
        assert columns[0] == columns[1] == columns[2]
        assert "class" in columns[0]
