import os
import sys

import pytest

# Ensure repository root importable early
ROOT_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if ROOT_DIR not in sys.path:
    sys.path.insert(0, ROOT_DIR)

# Must be set before the Flask app module is imported
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("FLOORGEN_SUPPRESS_ROUTE_MAP", "1")

from floorgen import create_app, db  # noqa: E402
from floorgen.layout import GenerationRequest, generate_layout  # noqa: E402
from floorgen.routes.layout_api import clear_layout_cache  # noqa: E402


@pytest.fixture(scope="session")
def test_app():
    app = create_app()
    app.config.update({"TESTING": True})
    return app


@pytest.fixture(autouse=True)
def _push_app_context(test_app):
    ctx = test_app.app_context()
    ctx.push()
    try:
        yield
    finally:
        ctx.pop()


@pytest.fixture()
def client(test_app):
    return test_app.test_client()


def pytest_configure(config):  # register custom markers
    config.addinivalue_line("markers", "db_isolation: force per-test DB rebuild for this test")
    config.addinivalue_line("markers", "performance: generation speed guardrails")


@pytest.fixture(autouse=True)
def _conditional_db_isolation(request, test_app):
    """Recreate DB only for tests marked with @pytest.mark.db_isolation."""
    if "db_isolation" in request.keywords:
        with test_app.app_context():
            db.drop_all()
            db.create_all()
        clear_layout_cache()
    yield


@pytest.fixture(scope="session")
def reference_request():
    """Seed 42, exactly 20 rooms on a 40x40 map."""
    return GenerationRequest(seed=42, width=40, height=40, min_rooms=20, max_rooms=20)


@pytest.fixture(scope="session")
def reference_result(reference_request):
    return generate_layout(reference_request)


@pytest.fixture(scope="session")
def reference_layout(reference_result):
    return reference_result.layout
