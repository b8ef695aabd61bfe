import pytest
from fastapi.testclient import TestClient

import main
from payments import SimulatedGateway
from persistence import SnapshotPersistence
from store import Store

CUSTOMER = ("9324270409", "123")
DISTRIBUTOR = ("6913228416", "123")
ADMIN = ("8898750419", "admin")


@pytest.fixture
def snapshot_path(tmp_path):
    return str(tmp_path / "state.json")


@pytest.fixture
def store(snapshot_path):
    s = Store(SnapshotPersistence(snapshot_path), restock_on_cancel=False, tax_rate=0.05)
    # product P of the worked examples: mrp 120, distributor price 90, 10 in stock
    s.update_stock("p2", 10)
    return s


@pytest.fixture
def gateway():
    return SimulatedGateway()


@pytest.fixture
def client(store, gateway):
    main.app.dependency_overrides[main.get_store] = lambda: store
    main.app.dependency_overrides[main.get_gateway] = lambda: gateway
    yield TestClient(main.app)
    main.app.dependency_overrides.clear()


def login_as(client, credentials):
    mobile, password = credentials
    res = client.post("/auth/login", json={"mobile": mobile, "password": password})
    assert res.status_code == 200, res.text
    body = res.json()
    client.headers["X-Session-Token"] = body["token"]
    return body
