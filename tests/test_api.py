"""Tests for the FanHub HTTP API."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

REGISTER_CSV = (
    "Holding register,Description,Read/Write,Value\n"
    "40001,Speed setpoint,Read/Write,0-100\n"
    "40002,Fault code,Read,0-255\n"
    "40003,,Read,0-1\n"
)


def _upload_model(client, headers, port="502", total="3", content=REGISTER_CSV):
    return client.post(
        "/fanmodel/upload-fanmodel",
        files={"file": ("registers.csv", content.encode(), "text/csv")},
        data={"ipAddress": "10.0.0.9", "port": port, "totalDevices": total},
        headers=headers,
    )


def _upload_fans(client, headers, floor_id, content):
    return client.post(
        "/fan/upload-fans",
        files={"file": ("fans.csv", content.encode(), "text/csv")},
        data={"floorId": floor_id},
        headers=headers,
    )


def _fans_csv(model_id, *device_ids, rpm=""):
    lines = ["FanId,Fan Name,FanModelId,RPM"]
    lines += [f"{d},Fan {d},{model_id},{rpm}" for d in device_ids]
    return "\n".join(lines) + "\n"


def _register_and_login(client, username="viewer", email="viewer@example.com", password="pw12345"):
    resp = client.post("/auth/register", json={
        "username": username, "email": email, "password": password, "confirmPassword": password,
    })
    assert resp.status_code == 201
    token = client.post("/auth/login", json={"email": email, "password": password}).json()["accessToken"]
    return {"Authorization": f"Bearer {token}"}


class TestService:
    def test_root_and_health(self, client):
        assert client.get("/").status_code == 200
        assert client.get("/health").json()["status"] == "ok"


# ══════════════════════════════════════════════════════════════════
# AUTH
# ══════════════════════════════════════════════════════════════════

class TestAuthApi:
    def test_login_returns_tokens_and_roles(self, client, auth_header):
        me = client.get("/auth/me", headers=auth_header).json()
        assert me["roles"] == ["SuperAdmin"]

    def test_bad_credentials(self, client):
        resp = client.post("/auth/login", json={"email": "nobody@example.com", "password": "x"})
        assert resp.status_code == 401

    def test_no_token(self, client):
        assert client.get("/floor").status_code == 401

    def test_garbage_token(self, client):
        assert client.get("/floor", headers={"Authorization": "Bearer nope"}).status_code == 401

    def test_user_without_role_is_forbidden(self, client):
        headers = _register_and_login(client)
        assert client.get("/floor", headers=headers).status_code == 200
        assert client.post("/floor", json={"name": "L1"}, headers=headers).status_code == 403

    def test_register_duplicate_email(self, client):
        _register_and_login(client)
        resp = client.post("/auth/register", json={
            "username": "other", "email": "viewer@example.com", "password": "a", "confirmPassword": "a",
        })
        assert resp.status_code == 409

    def test_register_password_mismatch(self, client):
        resp = client.post("/auth/register", json={
            "username": "u", "email": "u@example.com", "password": "a", "confirmPassword": "b",
        })
        assert resp.status_code == 400

    def test_register_unknown_role(self, client):
        resp = client.post("/auth/register", json={
            "username": "u", "email": "u@example.com", "password": "a", "confirmPassword": "a",
            "role": "Wizard",
        })
        assert resp.status_code == 400

    def test_password_reset_flow(self, client, conn):
        _register_and_login(client)
        assert client.post("/auth/forgot-password", json={"email": "viewer@example.com"}).status_code == 200
        otp = conn.execute("SELECT otp FROM users WHERE email = 'viewer@example.com'").fetchone()[0]

        assert client.post("/auth/verify-otp", json={"email": "viewer@example.com", "otp": "000000x"}).status_code == 400
        assert client.post("/auth/verify-otp", json={"email": "viewer@example.com", "otp": otp}).status_code == 200
        resp = client.post("/auth/reset-password", json={
            "email": "viewer@example.com", "newPassword": "fresh", "confirmPassword": "fresh",
        })
        assert resp.status_code == 200
        login = client.post("/auth/login", json={"email": "viewer@example.com", "password": "fresh"})
        assert login.status_code == 200

    def test_reset_requires_verified_otp(self, client):
        _register_and_login(client)
        resp = client.post("/auth/reset-password", json={
            "email": "viewer@example.com", "newPassword": "x", "confirmPassword": "x",
        })
        assert resp.status_code == 400

    def test_expired_otp(self, client, conn):
        _register_and_login(client)
        client.post("/auth/resend-otp", json={"email": "viewer@example.com"})
        past = (datetime.now(timezone.utc) - timedelta(minutes=5)).isoformat()
        conn.execute("UPDATE users SET otp_expiry = ? WHERE email = 'viewer@example.com'", (past,))
        conn.commit()
        otp = conn.execute("SELECT otp FROM users WHERE email = 'viewer@example.com'").fetchone()[0]
        resp = client.post("/auth/verify-otp", json={"email": "viewer@example.com", "otp": otp})
        assert resp.status_code == 400
        assert resp.json()["detail"] == "OTP expired"

    def test_forgot_password_unknown_email(self, client):
        assert client.post("/auth/forgot-password", json={"email": "x@example.com"}).status_code == 404


# ══════════════════════════════════════════════════════════════════
# ROLES
# ══════════════════════════════════════════════════════════════════

class TestRoleApi:
    def test_crud(self, client, auth_header):
        resp = client.post("/role", json={"name": "Operator", "permissions": {"control": True}}, headers=auth_header)
        assert resp.status_code == 201
        role = resp.json()
        assert role["permissions"] == {"control": True}

        names = [r["name"] for r in client.get("/role", headers=auth_header).json()]
        assert names == ["Operator", "SuperAdmin"]

        resp = client.put(f"/role/{role['id']}", json={"name": "Technician"}, headers=auth_header)
        assert resp.json()["name"] == "Technician"
        assert resp.json()["permissions"] == {"control": True}

        assert client.delete(f"/role/{role['id']}", headers=auth_header).status_code == 200
        assert client.get(f"/role/{role['id']}", headers=auth_header).status_code == 404

    def test_duplicate_name_is_case_insensitive(self, client, auth_header):
        resp = client.post("/role", json={"name": "superadmin"}, headers=auth_header)
        assert resp.status_code == 409


# ══════════════════════════════════════════════════════════════════
# FLOORS
# ══════════════════════════════════════════════════════════════════

class TestFloorApi:
    def test_create_and_get(self, client, auth_header):
        resp = client.post("/floor", json={"name": "Level 1", "file": "l1.png"}, headers=auth_header)
        assert resp.status_code == 201
        floor_id = resp.json()["floor"]["id"]

        got = client.get(f"/floor/get/{floor_id}", headers=auth_header).json()
        assert got["layout"]["file"] == "l1.png"

    def test_duplicate_name(self, client, auth_header):
        client.post("/floor", json={"name": "Level 1"}, headers=auth_header)
        resp = client.post("/floor", json={"name": "Level 1"}, headers=auth_header)
        assert resp.status_code == 409

    def test_layout_meta_created_then_updated(self, client, auth_header, floor):
        url = f"/floor/layouts/{floor['id']}"
        first = client.put(url, json={"meta": {"zones": 2}}, headers=auth_header)
        assert first.status_code == 201
        second = client.put(url, json={"meta": {"zones": 3}}, headers=auth_header)
        assert second.status_code == 200
        assert second.json()["layout"]["meta"] == {"zones": 3}

    def test_layout_meta_unknown_floor(self, client, auth_header):
        resp = client.put("/floor/layouts/nope", json={"meta": {}}, headers=auth_header)
        assert resp.status_code == 404
        assert resp.json()["detail"]["message"] == "Floor not found"

    def test_delete_cascades(self, client, auth_header, floor, fan):
        resp = client.delete(f"/floor/{floor['id']}", headers=auth_header)
        assert resp.json()["deletedFans"] == 1
        assert client.get(f"/floor/get/{floor['id']}", headers=auth_header).status_code == 404


# ══════════════════════════════════════════════════════════════════
# FAN MODELS
# ══════════════════════════════════════════════════════════════════

class TestFanModelApi:
    def test_upload(self, client, auth_header):
        resp = _upload_model(client, auth_header)
        assert resp.status_code == 201
        body = resp.json()
        assert body["insertedCount"] == 2
        assert body["errorCount"] == 1
        assert body["errors"][0]["row"] == 4
        assert len(body["fanModel"]["registers"]) == 2

        model_id = body["fanModel"]["id"]
        assert client.get(f"/fanmodel/{model_id}", headers=auth_header).json()["port"] == 502

    def test_duplicate_model(self, client, auth_header):
        _upload_model(client, auth_header)
        resp = _upload_model(client, auth_header)
        assert resp.status_code == 400
        assert resp.json()["detail"]["message"] == "Fan model details already exist"

    def test_malformed_csv(self, client, auth_header):
        resp = _upload_model(client, auth_header, content="just,some\ncolumns,here\n")
        assert resp.status_code == 400
        assert resp.json()["detail"]["message"] == "Invalid CSV format"

    def test_missing_form_fields(self, client, auth_header):
        resp = client.post(
            "/fanmodel/upload-fanmodel",
            files={"file": ("r.csv", REGISTER_CSV.encode(), "text/csv")},
            headers=auth_header,
        )
        assert resp.status_code == 400

    def test_non_numeric_port(self, client, auth_header):
        assert _upload_model(client, auth_header, port="modbus").status_code == 400

    def test_list_empty_is_not_found(self, client, auth_header):
        assert client.get("/fanmodel", headers=auth_header).status_code == 404


# ══════════════════════════════════════════════════════════════════
# FANS
# ══════════════════════════════════════════════════════════════════

class TestFanApi:
    def test_upload_and_list(self, client, auth_header, floor, model):
        resp = _upload_fans(client, auth_header, floor["id"], _fans_csv(model["id"], 1, 2, rpm="40"))
        assert resp.status_code == 201
        assert resp.json()["insertedCount"] == 2

        fans = client.get(f"/fan/{floor['id']}/fans", headers=auth_header).json()
        assert [f["deviceId"] for f in fans] == [1, 2]
        assert fans[0]["status"] == "ON"
        assert fans[0]["floor"]["name"] == "Ground"
        assert fans[0]["fanModel"]["id"] == model["id"]

        by_model = client.get(f"/fan/model/{model['id']}", headers=auth_header).json()
        assert len(by_model) == 2

    def test_upload_over_capacity(self, client, auth_header, conn, floor, model):
        resp = _upload_fans(client, auth_header, floor["id"], _fans_csv(model["id"], 1, 2, 3, 4))
        assert resp.status_code == 400
        detail = resp.json()["detail"]
        assert (detail["allowed"], detail["received"]) == (3, 4)
        assert conn.execute("SELECT COUNT(*) FROM fans").fetchone()[0] == 0

    def test_upload_unknown_floor(self, client, auth_header, model):
        resp = _upload_fans(client, auth_header, "nope", _fans_csv(model["id"], 1))
        assert resp.status_code == 404

    def test_add_single_fan(self, client, auth_header, floor, model):
        payload = {"floorId": floor["id"], "fanModelId": model["id"], "deviceId": 9, "name": "Stair"}
        resp = client.post("/fan", json=payload, headers=auth_header)
        assert resp.status_code == 201
        assert resp.json()["status"] == "OFF"
        assert client.post("/fan", json=payload, headers=auth_header).status_code == 409

    def test_speed_and_status(self, client, auth_header, floor, fan):
        base = f"/fan/{floor['id']}/fans/{fan['id']}"
        resp = client.put(f"{base}/speed", json={"rpm": 55}, headers=auth_header)
        assert (resp.json()["rpm"], resp.json()["status"]) == (55, "ON")

        resp = client.put(f"{base}/status", json={"status": "OFF"}, headers=auth_header)
        assert (resp.json()["rpm"], resp.json()["status"]) == (0, "OFF")

        assert client.put(f"{base}/status", json={"status": "ON"}, headers=auth_header).status_code == 400
        assert client.put(f"{base}/speed", json={"rpm": -4}, headers=auth_header).status_code == 400
        assert client.get(base, headers=auth_header).json()["rpm"] == 0

    def test_speed_command_body(self, client, auth_header, floor, fan):
        resp = client.put(
            "/fan/speed",
            json={"floorId": floor["id"], "fanId": fan["id"], "rpm": 75},
            headers=auth_header,
        )
        assert resp.status_code == 200
        assert (resp.json()["rpm"], resp.json()["status"]) == (75, "ON")

    def test_fan_on_wrong_floor(self, client, auth_header, conn, fan):
        from fanhub.floors import create_floor
        other = create_floor(conn, "Roof")["floor"]
        resp = client.put(f"/fan/{other['id']}/fans/{fan['id']}/speed", json={"rpm": 5}, headers=auth_header)
        assert resp.status_code == 404

    def test_bulk(self, client, auth_header, floor, fan):
        resp = client.put("/fan/speed/bulk", json={
            "floorId": floor["id"],
            "fans": [{"fanId": fan["id"], "rpm": 12}, {"fanId": "missing", "rpm": 12}],
        }, headers=auth_header)
        assert resp.status_code == 200
        body = resp.json()
        assert (body["successCount"], body["errorCount"]) == (1, 1)

    def test_bulk_out_of_range_first_item(self, client, auth_header, floor, fan):
        resp = client.put("/fan/speed/bulk", json={
            "floorId": floor["id"],
            "fans": [{"fanId": fan["id"], "rpm": 1e300}, {"fanId": {"x": 1}, "rpm": 5}, {"fanId": fan["id"], "rpm": 8}],
        }, headers=auth_header)
        assert resp.status_code == 200
        body = resp.json()
        assert [r["success"] for r in body["results"]] == [False, False, True]
        assert body["results"][2]["fan"]["rpm"] == 8

    def test_bulk_unknown_floor(self, client, auth_header):
        resp = client.put("/fan/speed/bulk", json={"floorId": "nope", "fans": []}, headers=auth_header)
        assert resp.status_code == 404
