import os
import tempfile

import pytest

# the engine is bound when inventory.repo is first imported
os.environ.setdefault("DATABASE_URL", f"sqlite:///{os.path.join(tempfile.mkdtemp(), 'inventory.db')}")


@pytest.fixture
def client():
    from fastapi.testclient import TestClient

    from inventory.main import app
    from inventory.repo import Base, engine

    Base.metadata.drop_all(engine)
    with TestClient(app) as c:
        yield c


@pytest.fixture
def stock(client):
    def _create(product_id, qty, reorder_point=5):
        r = client.post(
            "/inventory",
            json={"product_id": product_id, "stock_quantity": qty, "reorder_point": reorder_point},
        )
        assert r.status_code == 201, r.text
        return r.json()

    return _create
