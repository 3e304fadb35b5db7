from __future__ import annotations

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from venusdb import database
from venusdb.database import Base, get_db, get_read_db
from venusdb.main import app
from venusdb.apps.inventory import services as inventory_services


@pytest.fixture()
def client(db_session):
    def _override():
        yield db_session

    app.dependency_overrides[get_db] = _override
    app.dependency_overrides[get_read_db] = _override
    try:
        with TestClient(app) as test_client:
            yield test_client
    finally:
        app.dependency_overrides.clear()


@pytest.fixture()
def auth_headers(client):
    resp = client.post("/auth/signup", json={"email": "clerk@example.com", "password": "secret1"})
    assert resp.status_code == 201
    return {"Authorization": f"Bearer {resp.json()['access_token']}"}


def _create_item(client, headers, **overrides) -> dict:
    body = {"name": "Widget", "fno": "F1", "pack": "Box", "unit": "pcs"}
    body.update(overrides)
    resp = client.post("/inventory", json=body, headers=headers)
    assert resp.status_code == 201, resp.text
    return resp.json()


def _movement(inventory_id: int, quantity, **overrides) -> dict:
    body = {
        "inventory_id": inventory_id,
        "quantity": quantity,
        "price": "10.00",
        "vendor": "Acme",
        "phone": "555-0100",
    }
    body.update(overrides)
    return body


def test_inventory_routes_require_a_token(client):
    assert client.get("/inventory").status_code == 401
    assert client.post("/inventory/additions", json=_movement(1, 5)).status_code == 401

    resp = client.get("/inventory", headers={"Authorization": "Bearer not-a-jwt"})
    assert resp.status_code == 401
    assert resp.json()["detail"] == "Could not validate credentials"


def test_health_and_root_are_public(client):
    assert client.get("/health").json() == {"status": "ok"}
    root = client.get("/").json()
    assert root["endpoints"]["inventory"] == "/inventory"


def test_stock_flow_over_http(client, auth_headers):
    item = _create_item(client, auth_headers)
    assert item["current_stock"] == 0

    resp = client.post("/inventory/additions", json=_movement(item["id"], 50), headers=auth_headers)
    assert resp.status_code == 201
    addition = resp.json()
    assert addition["quantity"] == 50
    assert addition["inventory"]["name"] == "Widget"
    assert addition["date"] is not None

    resp = client.post("/inventory/subtractions", json=_movement(item["id"], 20), headers=auth_headers)
    assert resp.status_code == 201

    resp = client.post("/inventory/subtractions", json=_movement(item["id"], 40), headers=auth_headers)
    assert resp.status_code == 400
    assert resp.json()["detail"] == {
        "message": "Insufficient inventory. Available: 30, Requested: 40",
        "available": 30,
        "requested": 40,
    }

    stock = client.get(f"/inventory/{item['id']}/stock", headers=auth_headers).json()
    assert stock == {"inventory_id": item["id"], "current_stock": 30}
    assert client.get(f"/inventory/{item['id']}", headers=auth_headers).json()["current_stock"] == 30
    assert [row["current_stock"] for row in client.get("/inventory", headers=auth_headers).json()] == [30]


def test_unknown_item_returns_404(client, auth_headers):
    resp = client.post("/inventory/additions", json=_movement(999, 5), headers=auth_headers)
    assert resp.status_code == 404
    assert resp.json()["detail"] == "Inventory item not found"

    assert client.post("/inventory/subtractions", json=_movement(999, 1), headers=auth_headers).status_code == 404
    assert client.get("/inventory/999", headers=auth_headers).status_code == 404
    assert client.get("/inventory/999/stock", headers=auth_headers).status_code == 404
    assert client.delete("/inventory/999", headers=auth_headers).status_code == 404

    resp = client.get("/inventory/additions/999", headers=auth_headers)
    assert resp.status_code == 404
    assert resp.json()["detail"] == "Addition record not found"


@pytest.mark.parametrize(
    "overrides",
    [
        {"quantity": 0},
        {"quantity": -3},
        {"quantity": 2.5},
        {"price": "-1"},
        {"vendor": "   "},
        {"phone": None},
        {"inventory_id": "abc"},
    ],
)
def test_invalid_movements_are_rejected_with_400(client, auth_headers, db_session, overrides):
    item = _create_item(client, auth_headers)
    body = _movement(item["id"], 5)
    body.update(overrides)

    resp = client.post("/inventory/additions", json=body, headers=auth_headers)

    assert resp.status_code == 400
    assert resp.json()["message"] == "Validation failed"
    assert inventory_services.list_additions(db_session) == []


def test_item_requires_descriptors(client, auth_headers):
    resp = client.post(
        "/inventory",
        json={"name": "Widget", "fno": "", "pack": "Box", "unit": "pcs"},
        headers=auth_headers,
    )
    assert resp.status_code == 400


def test_history_routes_are_not_shadowed_by_item_routes(client, auth_headers):
    item_a = _create_item(client, auth_headers, name="A", fno="FA")
    item_b = _create_item(client, auth_headers, name="B", fno="FB")
    client.post("/inventory/additions", json=_movement(item_a["id"], 4), headers=auth_headers)
    client.post("/inventory/additions", json=_movement(item_b["id"], 6), headers=auth_headers)
    client.post("/inventory/subtractions", json=_movement(item_b["id"], 1), headers=auth_headers)

    all_additions = client.get("/inventory/additions", headers=auth_headers)
    assert all_additions.status_code == 200
    assert sorted(row["quantity"] for row in all_additions.json()) == [4, 6]

    for_b = client.get(f"/inventory/additions/inventory/{item_b['id']}", headers=auth_headers).json()
    assert [row["inventory_id"] for row in for_b] == [item_b["id"]]

    subtractions = client.get(f"/inventory/subtractions/inventory/{item_b['id']}", headers=auth_headers).json()
    assert [row["quantity"] for row in subtractions] == [1]
    assert client.get(f"/inventory/subtractions/inventory/{item_a['id']}", headers=auth_headers).json() == []


def test_update_and_delete_item(client, auth_headers):
    item = _create_item(client, auth_headers)
    client.post("/inventory/additions", json=_movement(item["id"], 3), headers=auth_headers)

    resp = client.put(f"/inventory/{item['id']}", json={"unit": "boxes"}, headers=auth_headers)
    assert resp.status_code == 200
    assert resp.json()["unit"] == "boxes"
    assert resp.json()["current_stock"] == 3

    resp = client.delete(f"/inventory/{item['id']}", headers=auth_headers)
    assert resp.status_code == 200
    assert resp.json() == {"message": "Inventory item deleted successfully"}
    assert client.get("/inventory/additions", headers=auth_headers).json() == []


def test_deleting_transactions(client, auth_headers):
    item = _create_item(client, auth_headers)
    addition = client.post("/inventory/additions", json=_movement(item["id"], 5), headers=auth_headers).json()
    subtraction = client.post("/inventory/subtractions", json=_movement(item["id"], 4), headers=auth_headers).json()

    resp = client.delete(f"/inventory/additions/{addition['id']}", headers=auth_headers)
    assert resp.status_code == 400
    assert resp.json()["detail"]["available"] == 1

    resp = client.delete(f"/inventory/subtractions/{subtraction['id']}", headers=auth_headers)
    assert resp.json() == {"message": "Subtraction deleted successfully"}

    resp = client.delete(f"/inventory/additions/{addition['id']}", headers=auth_headers)
    assert resp.json() == {"message": "Addition deleted successfully"}
    assert client.get(f"/inventory/{item['id']}/stock", headers=auth_headers).json()["current_stock"] == 0


def test_conflict_is_reported_as_retryable(client, auth_headers, monkeypatch):
    item = _create_item(client, auth_headers)

    def _conflict(db, *, payload):
        raise inventory_services.LedgerConflict("The inventory item was modified concurrently; retry the request.")

    monkeypatch.setattr(inventory_services, "record_subtraction", _conflict)
    resp = client.post("/inventory/subtractions", json=_movement(item["id"], 1), headers=auth_headers)

    assert resp.status_code == 409
    assert resp.headers["Retry-After"] == "1"


@pytest.fixture()
def file_db_client(tmp_path, monkeypatch):
    # real session dependencies: the auth lookup and the route each get their own connection
    monkeypatch.setattr(database, "SQLITE_BUSY_TIMEOUT", 2.0)
    engine = database.build_engine(f"sqlite+pysqlite:///{tmp_path / 'api.db'}")
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    monkeypatch.setattr(database, "WriteSessionLocal", factory)
    monkeypatch.setattr(database, "ReadSessionLocal", factory)
    try:
        with TestClient(app) as test_client:
            yield test_client
    finally:
        engine.dispose()


def test_read_routes_work_on_file_sqlite_with_separate_sessions(file_db_client):
    client = file_db_client
    resp = client.post("/auth/signup", json={"email": "clerk@example.com", "password": "secret1"})
    assert resp.status_code == 201
    headers = {"Authorization": f"Bearer {resp.json()['access_token']}"}

    item = _create_item(client, headers)
    assert client.post("/inventory/additions", json=_movement(item["id"], 10), headers=headers).status_code == 201
    assert client.post("/inventory/subtractions", json=_movement(item["id"], 4), headers=headers).status_code == 201

    listed = client.get("/inventory", headers=headers)
    assert listed.status_code == 200
    assert [row["current_stock"] for row in listed.json()] == [6]

    stock = client.get(f"/inventory/{item['id']}/stock", headers=headers)
    assert stock.status_code == 200
    assert stock.json()["current_stock"] == 6

    assert client.get(f"/inventory/{item['id']}", headers=headers).status_code == 200
    assert len(client.get("/inventory/additions", headers=headers).json()) == 1
    assert len(client.get(f"/inventory/subtractions/inventory/{item['id']}", headers=headers).json()) == 1

    resp = client.put(f"/inventory/{item['id']}", json={"remarks": "shelf 3"}, headers=headers)
    assert resp.status_code == 200
    assert client.get("/auth/me", headers=headers).status_code == 200
