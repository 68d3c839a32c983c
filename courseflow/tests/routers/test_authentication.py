# courseflow/tests/routers/test_authentication.py
"""tests for bearer token verification and the get_current_user dependency"""
# pylint: disable=missing-function-docstring

from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

from courseflow.main import app
from courseflow.services.auth_service import AuthService

client = TestClient(app)

SECRET = "unit-test-secret"


class TestAuthService:
    """Token signing and verification."""

    def test_round_trip(self):
        service = AuthService(secret_key=SECRET)
        token = service.create_access_token({"sub": "u1", "email": "a@b.c"})
        payload = service.verify_token(token)
        assert payload["sub"] == "u1"
        assert payload["email"] == "a@b.c"

    def test_expired_token(self):
        service = AuthService(secret_key=SECRET)
        token = service.create_access_token({"sub": "u1"}, expires_delta=timedelta(seconds=-5))
        with pytest.raises(ValueError, match="expired"):
            service.verify_token(token)

    def test_wrong_secret(self):
        token = AuthService(secret_key="other").create_access_token({"sub": "u1"})
        with pytest.raises(ValueError, match="Invalid token"):
            AuthService(secret_key=SECRET).verify_token(token)

    def test_missing_subject(self):
        service = AuthService(secret_key=SECRET)
        token = service.create_access_token({"email": "a@b.c"})
        with pytest.raises(ValueError, match="sub"):
            service.verify_token(token)

    @pytest.mark.parametrize("subject", ["a.b", "x#y", "team/ada"])
    def test_subject_unusable_as_user_key(self, subject):
        service = AuthService(secret_key=SECRET)
        token = service.create_access_token({"sub": subject})
        with pytest.raises(ValueError, match="sub"):
            service.verify_token(token)

    def test_unconfigured_secret_rejects_everything(self):
        with pytest.raises(ValueError):
            AuthService(secret_key="").verify_token("anything")


class TestGetCurrentUser:
    """Authentication on a real route."""

    def test_missing_token(self, monkeypatch):
        monkeypatch.delenv("NO_AUTH", raising=False)
        assert client.get("/settings/ai").status_code == 401

    def test_invalid_token(self, monkeypatch):
        monkeypatch.delenv("NO_AUTH", raising=False)
        response = client.get("/settings/ai", headers={"Authorization": "Bearer not-a-jwt"})
        assert response.status_code == 401

    def test_valid_token(self, monkeypatch):
        monkeypatch.delenv("NO_AUTH", raising=False)
        # Signed with SECRET_KEY as set in conftest
        token = AuthService().create_access_token({"sub": "u1"})
        response = client.get("/settings/ai", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 200

    def test_unusable_subject_is_401(self, monkeypatch):
        monkeypatch.delenv("NO_AUTH", raising=False)
        token = AuthService().create_access_token({"sub": "a.b"})
        response = client.get("/profile", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401

    def test_no_auth_bypass(self, monkeypatch):
        monkeypatch.setenv("NO_AUTH", "1")
        assert client.get("/settings/ai").status_code == 200
