"""Tests for iceout.main - HTTP surface over the core."""

from __future__ import annotations

from unittest.mock import patch

import pytest
from sqlalchemy.exc import OperationalError

from conftest import PHOTO, make_profile

SIGHTING = {
    "eventTime": "2024-01-26T14:30:00Z",
    "lat": 40.7128,
    "lng": -74.0060,
    "activityType": "Vehicle stop",
    "notes": "Two unmarked SUVs",
}
NEARBY = {"lat": 40.7150, "lng": -74.0060}
FAR = {"lat": 40.7300, "lng": -74.0060}


def token(n: int) -> str:
    return f"browser-device-token-{n:04d}"


def create(client, **overrides) -> dict:
    resp = client.post("/api/sightings", json={**SIGHTING, **overrides})
    assert resp.status_code == 201, resp.text
    return resp.json()


def validate(client, sighting_id: str, n: int, where=NEARBY, headers=None):
    return client.post(
        f"/api/sightings/{sighting_id}/validations",
        json={"device_token": token(n), **where},
        headers=headers or {},
    )


def as_principal(principal_id: str) -> dict:
    return {"X-Principal-Id": principal_id}


class TestSightings:
    def test_create_starts_unverified(self, client):
        body = create(client)
        assert body["status"] == "unverified"
        assert body["validations_count"] == 0
        assert body["activity_type"] == "Vehicle stop"

    def test_get_and_list(self, client):
        body = create(client)
        assert client.get(f"/api/sightings/{body['id']}").json()["id"] == body["id"]
        assert [s["id"] for s in client.get("/api/sightings").json()] == [body["id"]]
        assert client.get("/api/sightings/nope").status_code == 404

    @pytest.mark.parametrize(
        "overrides",
        [
            {"lat": 90.5},
            {"lng": -181},
            {"activityType": ""},
            {"activityType": "x" * 65},
            {"notes": "n" * 2001},
            {"eventTime": "yesterday-ish"},
            {"media": [{"path": "a.exe", "type": "application/octet-stream"}]},
        ],
    )
    def test_invalid_input_rejected(self, client, overrides):
        resp = client.post("/api/sightings", json={**SIGHTING, **overrides})
        assert resp.status_code == 422
        assert client.get("/api/sightings").json() == []

    def test_status_filter(self, client):
        s = create(client, media=PHOTO)
        validate(client, s["id"], 1)
        validate(client, s["id"], 2)
        create(client)
        verified = client.get("/api/sightings", params={"status": "verified"}).json()
        assert [v["id"] for v in verified] == [s["id"]]


class TestValidations:
    def test_three_validations_verify(self, client):
        s = create(client)
        for n in range(2):
            assert validate(client, s["id"], n).json()["sighting"]["status"] == "unverified"
        resp = validate(client, s["id"], 2)
        assert resp.status_code == 201
        body = resp.json()
        assert body["admitted"] is True
        assert body["sighting"]["status"] == "verified"
        assert body["sighting"]["validations_count"] == 3

    def test_media_lowers_threshold(self, client):
        s = create(client, media=PHOTO)
        validate(client, s["id"], 1)
        assert validate(client, s["id"], 2).json()["sighting"]["status"] == "verified"

    def test_duplicate_device_is_conflict(self, client):
        s = create(client)
        assert validate(client, s["id"], 1).status_code == 201
        resp = validate(client, s["id"], 1)
        assert resp.status_code == 409
        assert resp.json()["reason"] == "DUPLICATE_DEVICE"
        assert resp.json()["sighting"]["validations_count"] == 1

    def test_out_of_range_then_retry(self, client):
        s = create(client)
        resp = validate(client, s["id"], 1, where=FAR)
        assert resp.status_code == 422
        assert resp.json()["reason"] == "OUT_OF_RANGE"
        assert "500 meters" in resp.json()["message"]
        assert validate(client, s["id"], 1).status_code == 201

    @pytest.mark.parametrize("code, reason", [("denied", "GEOLOCATION_DENIED"), ("timeout", "GEOLOCATION_TIMEOUT")])
    def test_geolocation_failures(self, client, code, reason):
        s = create(client)
        resp = client.post(
            f"/api/sightings/{s['id']}/validations",
            json={"device_token": token(1), "geolocation_error": code},
        )
        assert resp.status_code == 422
        assert resp.json()["reason"] == reason

    def test_missing_position(self, client):
        s = create(client)
        resp = client.post(f"/api/sightings/{s['id']}/validations", json={"device_token": token(1)})
        assert resp.status_code == 422

    def test_short_device_token(self, client):
        s = create(client)
        resp = client.post(
            f"/api/sightings/{s['id']}/validations",
            json={"device_token": "short", **NEARBY},
        )
        assert resp.status_code == 422

    def test_unknown_sighting(self, client):
        assert validate(client, "missing", 1).status_code == 404

    def test_device_token_issued(self, client):
        tok = client.post("/api/device-token").json()["device_token"]
        assert len(tok) >= 16

    def test_store_failure_is_generic(self, client):
        s = create(client)
        with patch("iceout.main.submit_validation", side_effect=OperationalError("stmt", {}, Exception("down"))):
            resp = validate(client, s["id"], 1)
        assert resp.status_code == 503
        assert "try again" in resp.json()["detail"]


class TestConfirmAndRoles:
    @pytest.fixture(autouse=True)
    def _principals(self, db):
        make_profile(db, "anon-1", email="anon@example.com")
        make_profile(db, "trusted-1", role="trusted")
        make_profile(db, "admin-1", role="admin", email="admin@example.com")

    def test_confirm_requires_trusted(self, client):
        s = create(client)
        resp = client.post(f"/api/sightings/{s['id']}/confirm", headers=as_principal("anon-1"))
        assert resp.status_code == 403
        assert resp.json() == {"detail": "Not permitted"}
        assert client.post(f"/api/sightings/{s['id']}/confirm").status_code == 403

    def test_trusted_confirms_without_validations(self, client):
        s = create(client)
        resp = client.post(f"/api/sightings/{s['id']}/confirm", headers=as_principal("trusted-1"))
        assert resp.status_code == 200
        assert resp.json()["status"] == "confirmed"
        assert resp.json()["validations_count"] == 0

    def test_confirmed_survives_validations(self, client):
        s = create(client)
        client.post(f"/api/sightings/{s['id']}/confirm", headers=as_principal("admin-1"))
        for n in range(4):
            assert validate(client, s["id"], n).status_code == 201
        assert client.get(f"/api/sightings/{s['id']}").json()["status"] == "confirmed"

    @pytest.mark.parametrize("actor", ["anon-1", "trusted-1"])
    def test_role_change_forbidden(self, client, actor):
        resp = client.put("/api/admin/profiles/anon-1/role", json={"role": "admin"}, headers=as_principal(actor))
        assert resp.status_code == 403

    def test_admin_changes_role(self, client):
        resp = client.put("/api/admin/profiles/anon-1/role", json={"role": "trusted"}, headers=as_principal("admin-1"))
        assert resp.status_code == 200
        assert resp.json()["role"] == "trusted"
        assert client.get("/api/me", headers=as_principal("anon-1")).json()["role"] == "trusted"

    def test_invalid_role_value(self, client):
        resp = client.put("/api/admin/profiles/anon-1/role", json={"role": "root"}, headers=as_principal("admin-1"))
        assert resp.status_code == 422

    def test_admin_lists_profiles(self, client):
        assert client.get("/api/admin/profiles", headers=as_principal("trusted-1")).status_code == 403
        ids = {p["id"] for p in client.get("/api/admin/profiles", headers=as_principal("admin-1")).json()}
        assert ids == {"anon-1", "trusted-1", "admin-1"}

    def test_invite_flow(self, client):
        resp = client.post("/api/admin/invites", json={"email": " A@Example.com"}, headers=as_principal("admin-1"))
        assert resp.status_code == 201
        assert resp.json()["email"] == "a@example.com"

        signed_in = client.post("/api/auth/sign-in", json={"principalId": "new-1", "email": "a@example.com"})
        assert signed_in.json()["role"] == "trusted"
        assert client.get("/api/admin/invites", headers=as_principal("admin-1")).json() == []

        again = client.post("/api/auth/sign-in", json={"principalId": "new-2", "email": "a@example.com"})
        assert again.json()["role"] == "anonymous"

    def test_invite_requires_admin_and_email(self, client):
        assert client.post("/api/admin/invites", json={"email": "a@example.com"}, headers=as_principal("trusted-1")).status_code == 403
        assert client.post("/api/admin/invites", json={"email": "nope"}, headers=as_principal("admin-1")).status_code == 400

    def test_revoke_invite(self, client):
        client.post("/api/admin/invites", json={"email": "a@example.com"}, headers=as_principal("admin-1"))
        assert client.delete("/api/admin/invites/a@example.com", headers=as_principal("admin-1")).status_code == 204
        assert client.delete("/api/admin/invites/a@example.com", headers=as_principal("admin-1")).status_code == 404

    def test_admin_deletes_validation(self, client, db):
        from iceout.models import Validation

        s = create(client)
        validate(client, s["id"], 1)
        vid = db.query(Validation.id).filter(Validation.sighting_id == s["id"]).scalar()
        assert client.delete(f"/api/validations/{vid}", headers=as_principal("trusted-1")).status_code == 403
        resp = client.delete(f"/api/validations/{vid}", headers=as_principal("admin-1"))
        assert resp.status_code == 200
        assert resp.json()["validations_count"] == 0
