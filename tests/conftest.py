"""pytest configuration for FanHub tests."""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from fanhub.auth import DEFAULT_ADMIN_EMAIL, DEFAULT_ADMIN_PASSWORD
from fanhub.db import get_db, init_db
from fanhub.floors import create_floor
from fanhub.provisioning import ModelTarget, ingest_registers
from fanhub.provisioning.coordinator import add_fan

REGISTER_ROW = {
    "Holding register": "40001",
    "Description": "Speed setpoint",
    "Read/Write": "Read/Write",
    "Value": "0-100",
}


@pytest.fixture(autouse=True)
def db_path(tmp_path):
    path = tmp_path / "fanhub.db"
    init_db(path)
    return path


@pytest.fixture()
def conn(db_path):
    return get_db()


@pytest.fixture()
def floor(conn):
    return create_floor(conn, "Ground")["floor"]


@pytest.fixture()
def make_model(conn):
    ports = iter(range(502, 600))

    def _make(total_devices: int = 3, ip_address: str = "10.0.0.5") -> dict:
        target = ModelTarget(ip_address, next(ports), total_devices)
        return ingest_registers(conn, [REGISTER_ROW], target).entity

    return _make


@pytest.fixture()
def model(make_model):
    return make_model(total_devices=3)


@pytest.fixture()
def fan(conn, floor, model):
    return add_fan(conn, floor["id"], model["id"], 1, "North intake")


@pytest.fixture()
def client(db_path):
    from fanhub.server import app
    with TestClient(app) as c:
        yield c


@pytest.fixture()
def auth_header(client):
    resp = client.post(
        "/auth/login", json={"email": DEFAULT_ADMIN_EMAIL, "password": DEFAULT_ADMIN_PASSWORD}
    )
    assert resp.status_code == 200
    return {"Authorization": f"Bearer {resp.json()['accessToken']}"}
