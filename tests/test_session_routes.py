"""
tests/test_session_routes.py -- Integration tests for the external session routes.

These tests exercise the full stack: FastAPI routing -> auth dependency ->
SessionCredentialService -> SessionStore -> response model serialization.

Coverage:
  - Auth failures: 401 on every session route without a token
  - Mercado Livre flow: NOT_CONNECTED -> upload -> ACTIVE -> list -> validate -> delete
  - Upload variants: JSON object, JSON text, base64, multipart file
  - Error envelope: unsupported site, missing/invalid storage state, both
    storage state fields, 404, 413 on file and JSON uploads
  - No response ever carries the ciphertext or the raw storage state

Fixtures used (from conftest.py):
  - api_client: (client, token, uid)
  - sample_state: 3 cookies, 1 origin
"""

from __future__ import annotations

import base64
import json

import pytest
from fastapi.testclient import TestClient

from core.config import get_settings
from sessions.models import SessionStatus

SITE = "MERCADO_LIVRE"


def _auth(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


class TestSessionAuthFailure:
    @pytest.mark.parametrize(
        ("method", "path"),
        [
            ("GET", "/api/v1/sessions"),
            ("GET", "/api/v1/sessions/supported-sites"),
            ("GET", f"/api/v1/sessions/{SITE}/status"),
            ("POST", f"/api/v1/sessions/{SITE}/upload"),
            ("DELETE", f"/api/v1/sessions/{SITE}"),
            ("POST", f"/api/v1/sessions/{SITE}/validate"),
        ],
    )
    def test_unauthenticated(self, api_client: tuple[TestClient, str, int], method: str, path: str) -> None:
        client, _token, _uid = api_client
        resp = client.request(method, path)
        assert resp.status_code == 401, f"Expected 401 for {method} {path}, got {resp.status_code}"


class TestMercadoLivreFlow:
    """End to end: a user with no session uploads one, checks it, validates it and removes it."""

    def test_full_flow(self, api_client: tuple[TestClient, str, int], sample_state: dict) -> None:
        client, token, uid = api_client
        headers = _auth(token)

        resp = client.get(f"/api/v1/sessions/{SITE}/status", headers=headers)
        assert resp.status_code == 200
        status = resp.json()
        assert status["status"] == SessionStatus.NOT_CONNECTED.value
        assert status["has_session"] is False
        assert status["needs_action"] is True
        assert status["site_name"] == "Mercado Livre"

        resp = client.post(
            f"/api/v1/sessions/{SITE}/upload",
            headers=headers,
            json={"storage_state": sample_state, "account_label": "Conta principal"},
        )
        assert resp.status_code == 200, resp.text
        upload = resp.json()
        assert upload["success"] is True
        assert upload["cookies_count"] == 3
        assert upload["origins_count"] == 1
        assert "abc123" not in resp.text

        resp = client.get(f"/api/v1/sessions/{SITE}/status", headers=headers)
        status = resp.json()
        assert status["status"] == "ACTIVE"
        assert status["status_label"] == "Connected"
        assert status["has_session"] is True
        assert status["needs_action"] is False
        assert status["account_label"] == "Conta principal"
        assert status["cookies_count"] == 3
        assert status["expires_at"]
        assert "encrypted_storage_state" not in status

        resp = client.get("/api/v1/sessions", headers=headers)
        listing = resp.json()
        assert [s["site"] for s in listing["sessions"]] == [SITE]
        assert listing["sessions"][0]["domain"] == "mercadolivre.com.br"
        assert len(listing["supported_sites"]) == 5
        assert "abc123" not in resp.text

        resp = client.post(f"/api/v1/sessions/{SITE}/validate", headers=headers)
        assert resp.status_code == 200
        assert resp.json()["status"] == "ACTIVE"

        resp = client.delete(f"/api/v1/sessions/{SITE}", headers=headers)
        assert resp.status_code == 200

        resp = client.get(f"/api/v1/sessions/{SITE}/status", headers=headers)
        assert resp.json()["status"] == "NOT_CONNECTED"

        stored = client.app.state.session_store.get(uid, SITE)
        assert stored is None


class TestUploadVariants:
    def test_json_text(self, api_client: tuple[TestClient, str, int], sample_state: dict) -> None:
        client, token, _uid = api_client
        resp = client.post(
            "/api/v1/sessions/SUPERBID/upload",
            headers=_auth(token),
            json={"storage_state": json.dumps(sample_state)},
        )
        assert resp.status_code == 200, resp.text
        assert resp.json()["cookies_count"] == 3

    def test_base64(self, api_client: tuple[TestClient, str, int], sample_state: dict) -> None:
        client, token, _uid = api_client
        encoded = base64.b64encode(json.dumps(sample_state).encode()).decode()
        resp = client.post(
            "/api/v1/sessions/VIP_LEILOES/upload",
            headers=_auth(token),
            json={"storage_state_base64": encoded},
        )
        assert resp.status_code == 200, resp.text

    def test_multipart_file(self, api_client: tuple[TestClient, str, int], sample_state: dict) -> None:
        client, token, uid = api_client
        resp = client.post(
            "/api/v1/sessions/SODRE_SANTORO/upload-file",
            headers=_auth(token),
            files={"file": ("state.json", json.dumps(sample_state).encode(), "application/json")},
            data={"account_label": "arquivo"},
        )
        assert resp.status_code == 200, resp.text
        stored = client.app.state.session_store.get(uid, "SODRE_SANTORO")
        assert stored.account_label == "arquivo"
        assert stored.domain == "sodresantoro.com.br"

    def test_file_too_large(
        self, api_client: tuple[TestClient, str, int], monkeypatch: pytest.MonkeyPatch
    ) -> None:
        client, token, _uid = api_client
        monkeypatch.setattr(get_settings(), "max_upload_bytes", 64)
        resp = client.post(
            "/api/v1/sessions/SUPERBID/upload-file",
            headers=_auth(token),
            files={"file": ("state.json", b"{" + b" " * 200 + b"}", "application/json")},
        )
        assert resp.status_code == 413
        assert resp.json()["error"]["code"] == "file_too_large"

    def test_explicit_expiry(self, api_client: tuple[TestClient, str, int], sample_state: dict) -> None:
        client, token, _uid = api_client
        resp = client.post(
            "/api/v1/sessions/FACEBOOK_MARKETPLACE/upload",
            headers=_auth(token),
            json={"storage_state": sample_state, "expires_at": "2000-01-01T00:00:00Z"},
        )
        assert resp.status_code == 200
        status = client.get("/api/v1/sessions/FACEBOOK_MARKETPLACE/status", headers=_auth(token)).json()
        assert status["status"] == "EXPIRED"
        assert status["needs_action"] is True


class TestSessionErrors:
    def test_unsupported_site(self, api_client: tuple[TestClient, str, int], sample_state: dict) -> None:
        client, token, _uid = api_client
        resp = client.post("/api/v1/sessions/OLX/upload", headers=_auth(token), json={"storage_state": sample_state})
        assert resp.status_code == 400
        error = resp.json()["error"]
        assert error["code"] == "unsupported_site"
        assert SITE in error["detail"]

    def test_unsupported_site_status(self, api_client: tuple[TestClient, str, int]) -> None:
        client, token, _uid = api_client
        resp = client.get("/api/v1/sessions/OLX/status", headers=_auth(token))
        assert resp.status_code == 400

    def test_missing_storage_state(self, api_client: tuple[TestClient, str, int]) -> None:
        client, token, _uid = api_client
        resp = client.post(f"/api/v1/sessions/{SITE}/upload", headers=_auth(token), json={})
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "missing_storage_state"

    def test_invalid_storage_state(self, api_client: tuple[TestClient, str, int]) -> None:
        client, token, _uid = api_client
        resp = client.post(
            f"/api/v1/sessions/{SITE}/upload",
            headers=_auth(token),
            json={"storage_state": {"cookies": []}},
        )
        assert resp.status_code == 400
        error = resp.json()["error"]
        assert error["code"] == "invalid_storage_state"
        assert "origins" in error["detail"]

    def test_both_storage_state_fields(self, api_client: tuple[TestClient, str, int], sample_state: dict) -> None:
        client, token, _uid = api_client
        encoded = base64.b64encode(json.dumps(sample_state).encode()).decode()
        resp = client.post(
            f"/api/v1/sessions/{SITE}/upload",
            headers=_auth(token),
            json={"storage_state": sample_state, "storage_state_base64": encoded},
        )
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "validation_error"

    def test_json_upload_too_large(
        self, api_client: tuple[TestClient, str, int], sample_state: dict, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        client, token, _uid = api_client
        monkeypatch.setattr(get_settings(), "max_upload_bytes", 64)
        resp = client.post(
            "/api/v1/sessions/SUPERBID/upload",
            headers=_auth(token),
            json={"storage_state": sample_state},
        )
        assert resp.status_code == 413
        assert resp.json()["error"]["code"] == "payload_too_large"

    def test_delete_missing(self, api_client: tuple[TestClient, str, int]) -> None:
        client, token, _uid = api_client
        client.delete("/api/v1/sessions/SUPERBID", headers=_auth(token))
        resp = client.delete("/api/v1/sessions/SUPERBID", headers=_auth(token))
        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "session_not_found"

    def test_validate_not_connected(self, api_client: tuple[TestClient, str, int]) -> None:
        client, token, _uid = api_client
        client.delete(f"/api/v1/sessions/{SITE}", headers=_auth(token))
        resp = client.post(f"/api/v1/sessions/{SITE}/validate", headers=_auth(token))
        assert resp.status_code == 404


class TestSupportedSites:
    def test_lists_registry(self, api_client: tuple[TestClient, str, int]) -> None:
        client, token, _uid = api_client
        resp = client.get("/api/v1/sessions/supported-sites", headers=_auth(token))
        assert resp.status_code == 200
        ids = [s["id"] for s in resp.json()]
        assert ids == ["MERCADO_LIVRE", "FACEBOOK_MARKETPLACE", "SUPERBID", "VIP_LEILOES", "SODRE_SANTORO"]
