import os
import tempfile

# Point the module-level app at a throwaway database before it is imported
_SCRATCH = tempfile.mkdtemp(prefix="inventory-tests-")
os.environ.setdefault("DB_URI", f"sqlite:///{os.path.join(_SCRATCH, 'import.db')}")
os.environ.setdefault("UPLOAD_DIR", os.path.join(_SCRATCH, "uploads"))

import pytest
from fastapi.testclient import TestClient

from shared.core.config import Settings
from inventory_service.app.main import create_app


@pytest.fixture
def settings(tmp_path):
    return Settings(
        DB_URI=f"sqlite:///{tmp_path / 'inventory.db'}",
        UPLOAD_DIR=str(tmp_path / "uploads"),
        STORAGE_PUBLIC_URL="http://testserver/uploads",
        LOG_LEVEL="WARNING",
        MAX_UPLOAD_BYTES=1024,
    )


@pytest.fixture
def app(settings):
    application = create_app(settings)
    yield application
    application.state.engine.dispose()


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def db(app):
    session = app.state.session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def create_item(client):
    def _create(**overrides):
        payload = {"name": "Widget", "price": 10}
        payload.update(overrides)
        res = client.post("/items", json=payload)
        assert res.status_code == 201, res.text
        return res.json()
    return _create


@pytest.fixture
def get_item(client):
    def _get(item_id):
        res = client.get(f"/items/{item_id}")
        assert res.status_code == 200, res.text
        return res.json()
    return _get


@pytest.fixture
def create_purchase(client):
    def _create(lines, status="received", **overrides):
        payload = {"items": lines, "status": status}
        payload.update(overrides)
        return client.post("/purchases", json=payload)
    return _create


@pytest.fixture
def create_sale(client):
    def _create(lines, status="completed", **overrides):
        payload = {"items": lines, "status": status}
        payload.update(overrides)
        return client.post("/sales", json=payload)
    return _create
