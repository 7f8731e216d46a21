from datetime import timedelta

import pytest
import requests

from ayu_connect import create_app
from ayu_connect.config import TestConfig
from ayu_connect.models import DigiLockerSession, SessionState
from ayu_connect.services import DigiLockerClient, DigiLockerProfile, IdentityProviderError, IdentityService
from conftest import DOCTOR_AADHAAR, PATIENT_AADHAAR, START, login


def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.get_json()["status"] == "ok"
    assert client.get("/api/health").get_json()["status"] == "healthy"


# ==================== AADHAAR + OTP ====================

def test_otp_login_creates_user_once(client):
    headers, user = login(client, PATIENT_AADHAAR, name="Asha Verma")
    assert user["name"] == "Asha Verma"
    assert user["aadhaarNumber"] == PATIENT_AADHAAR

    _, again = login(client, PATIENT_AADHAAR)
    assert again["id"] == user["id"]

    r = client.get("/api/auth/user", headers=headers)
    assert r.status_code == 200
    body = r.get_json()
    assert body["success"] is True
    assert body["data"]["id"] == user["id"]
    assert body["data"]["authMethod"] == "bearer"


def test_aadhaar_number_is_validated(client):
    r = client.post("/api/auth/aadhaar", json={"aadhaarNumber": "1234"})
    assert r.status_code == 400
    assert r.get_json()["success"] is False

    # Spaces and dashes are accepted
    r = client.post("/api/auth/aadhaar", json={"aadhaarNumber": "1234 1234-1234"})
    assert r.status_code == 200


def test_wrong_otp_is_rejected_and_counted(client, app):
    client.post("/api/auth/aadhaar", json={"aadhaarNumber": PATIENT_AADHAAR})
    for _ in range(app.config["OTP_MAX_ATTEMPTS"]):
        r = client.post("/api/auth/verify-otp", json={"aadhaarNumber": PATIENT_AADHAAR, "otp": "000000"})
        assert r.status_code == 401
        assert r.get_json()["message"] == "Invalid OTP"

    r = client.post("/api/auth/verify-otp", json={"aadhaarNumber": PATIENT_AADHAAR, "otp": "000000"})
    assert r.status_code == 401
    assert "Too many" in r.get_json()["message"]


def test_otp_expires(client, clock, app):
    r = client.post("/api/auth/aadhaar", json={"aadhaarNumber": PATIENT_AADHAAR})
    otp = r.get_json()["data"]["devOtp"]
    clock.advance(timedelta(minutes=app.config["OTP_TTL_MINUTES"]))

    r = client.post("/api/auth/verify-otp", json={"aadhaarNumber": PATIENT_AADHAAR, "otp": otp})
    assert r.status_code == 401
    assert "expired" in r.get_json()["message"]


def test_otp_is_single_use(client):
    r = client.post("/api/auth/aadhaar", json={"aadhaarNumber": PATIENT_AADHAAR})
    otp = r.get_json()["data"]["devOtp"]
    body = {"aadhaarNumber": PATIENT_AADHAAR, "otp": otp}
    assert client.post("/api/auth/verify-otp", json=body).status_code == 200
    assert client.post("/api/auth/verify-otp", json=body).status_code == 401


def test_new_otp_supersedes_old_one(client):
    first = client.post("/api/auth/aadhaar", json={"aadhaarNumber": PATIENT_AADHAAR}).get_json()["data"]["devOtp"]
    second = client.post("/api/auth/aadhaar", json={"aadhaarNumber": PATIENT_AADHAAR}).get_json()["data"]["devOtp"]
    if first != second:
        r = client.post("/api/auth/verify-otp", json={"aadhaarNumber": PATIENT_AADHAAR, "otp": first})
        assert r.status_code == 401
    r = client.post("/api/auth/verify-otp", json={"aadhaarNumber": PATIENT_AADHAAR, "otp": second})
    assert r.status_code == 200


def test_dev_otp_hidden_unless_enabled(client, app):
    app.config["OTP_EXPOSE_CODE"] = False
    r = client.post("/api/auth/aadhaar", json={"aadhaarNumber": PATIENT_AADHAAR})
    assert r.status_code == 200
    assert "devOtp" not in r.get_json()["data"]


# ==================== CREDENTIALS ====================

def test_protected_route_requires_credentials(client):
    r = client.get("/api/records")
    assert r.status_code == 401
    assert r.get_json()["success"] is False


def test_garbage_bearer_token_is_rejected(client):
    r = client.get("/api/records", headers={"Authorization": "Bearer not-a-jwt"})
    assert r.status_code == 401
    assert r.get_json()["message"] == "Invalid token"


def test_profile_update_and_login_history(client, patient):
    r = client.put("/api/auth/profile", json={"name": "Asha V."}, headers=patient["headers"])
    assert r.status_code == 200
    assert r.get_json()["data"]["name"] == "Asha V."

    r = client.put("/api/auth/profile", json={"name": "  "}, headers=patient["headers"])
    assert r.status_code == 400

    r = client.get("/api/auth/logins", headers=patient["headers"])
    assert r.status_code == 200
    body = r.get_json()
    assert body["count"] == 1
    assert body["data"][0]["action"] == "LOGIN"


def test_users_are_isolated(client, patient, doctor):
    assert patient["user"]["id"] != doctor["user"]["id"]
    assert doctor["user"]["aadhaarNumber"] == DOCTOR_AADHAAR


# ==================== DIGILOCKER ====================

def start_digilocker_session(client):
    r = client.get("/api/digilocker/session")
    assert r.status_code == 201
    data = r.get_json()["data"]
    assert data["authorizationUrl"].endswith(f"state={data['sessionId']}")
    return data["sessionId"]


def test_digilocker_session_authenticates(client, digilocker):
    session_id = start_digilocker_session(client)
    assert client.get(f"/api/digilocker/status/{session_id}").get_json()["data"]["state"] == "pending"

    r = client.get("/api/digilocker/callback", query_string={"state": session_id, "code": "abc"})
    assert r.status_code == 200
    user = r.get_json()["data"]["user"]
    assert user["externalId"] == "DL-abc"
    assert digilocker.codes == ["abc"]

    r = client.get("/api/auth/user", headers={"x-session-id": session_id})
    assert r.status_code == 200
    assert r.get_json()["data"]["authMethod"] == "session"
    assert r.get_json()["data"]["id"] == user["id"]


def test_digilocker_session_cannot_be_replayed(client):
    session_id = start_digilocker_session(client)
    client.get("/api/digilocker/callback", query_string={"state": session_id, "code": "abc"})
    r = client.get("/api/digilocker/callback", query_string={"state": session_id, "code": "abc"})
    assert r.status_code == 400


def test_digilocker_failure_marks_session_failed(client):
    session_id = start_digilocker_session(client)
    r = client.get("/api/digilocker/callback", query_string={"state": session_id, "code": "bad-code"})
    assert r.status_code == 401

    assert client.get(f"/api/digilocker/status/{session_id}").get_json()["data"]["state"] == "failed"
    assert client.get("/api/auth/user", headers={"x-session-id": session_id}).status_code == 401


def test_digilocker_denied_consent(client):
    session_id = start_digilocker_session(client)
    r = client.get("/api/digilocker/callback", query_string={"state": session_id, "error": "access_denied"})
    assert r.status_code == 401


def test_digilocker_session_expires(client, clock, app):
    session_id = start_digilocker_session(client)
    client.get("/api/digilocker/callback", query_string={"state": session_id, "code": "abc"})
    clock.advance(timedelta(hours=app.config["DIGILOCKER_SESSION_HOURS"]))
    assert client.get("/api/auth/user", headers={"x-session-id": session_id}).status_code == 401


def test_unknown_session(client):
    assert client.get("/api/digilocker/status/nope").status_code == 404
    assert client.get("/api/auth/user", headers={"x-session-id": "nope"}).status_code == 401


def test_digilocker_without_credentials_is_unavailable(tmp_path):
    app = create_app(
        TestConfig,
        UPLOAD_FOLDER=str(tmp_path / "uploads"),
        DIGILOCKER_CLIENT_ID="",
        DIGILOCKER_CLIENT_SECRET="",
    )
    try:
        assert app.extensions["ayu_connect"].digilocker is None
        r = app.test_client().get("/api/digilocker/session")
        assert r.status_code == 502
        assert r.get_json() == {"success": False, "message": "DigiLocker is not configured"}
    finally:
        app.extensions["ayu_connect"].database.dispose()


def test_unconfigured_digilocker_cannot_complete_session(database, clock):
    session = database.session()
    session.add(DigiLockerSession(session_id="s-1", state=SessionState.PENDING, created_at=START,
                                  expires_at=START + timedelta(hours=1)))
    session.commit()

    service = IdentityService(session, clock, digilocker=None)
    with pytest.raises(IdentityProviderError):
        service.complete_session("s-1", "abc")
    assert session.get(DigiLockerSession, "s-1").state == SessionState.PENDING
    session.close()


# ==================== DIGILOCKER HTTP CLIENT ====================

class FakeResponse:
    def __init__(self, payload, status=200):
        self.payload = payload
        self.status = status

    def raise_for_status(self):
        if self.status >= 400:
            raise requests.HTTPError(f"{self.status} error")

    def json(self):
        return self.payload


def make_client():
    return DigiLockerClient.from_config({
        "DIGILOCKER_CLIENT_ID": "client-1",
        "DIGILOCKER_CLIENT_SECRET": "secret",
        "DIGILOCKER_REDIRECT_URI": "http://localhost:8080/api/digilocker/callback",
        "DIGILOCKER_AUTHORIZE_URL": "https://dl.test/authorize",
        "DIGILOCKER_TOKEN_URL": "https://dl.test/token",
        "DIGILOCKER_PROFILE_URL": "https://dl.test/user",
    })


def test_client_needs_credentials():
    assert DigiLockerClient.from_config({"DIGILOCKER_CLIENT_ID": "", "DIGILOCKER_CLIENT_SECRET": "secret"}) is None
    assert DigiLockerClient.from_config({"DIGILOCKER_CLIENT_ID": "client-1", "DIGILOCKER_CLIENT_SECRET": ""}) is None
    assert isinstance(make_client(), DigiLockerClient)


def test_digilocker_client_exchanges_code(monkeypatch):
    calls = []

    def fake_post(url, data=None, timeout=None):
        calls.append(("POST", url, data["code"]))
        return FakeResponse({"access_token": "at-1"})

    def fake_get(url, headers=None, timeout=None):
        calls.append(("GET", url, headers["Authorization"]))
        return FakeResponse({"digilockerid": "DL-42", "name": "Asha Verma"})

    monkeypatch.setattr(requests, "post", fake_post)
    monkeypatch.setattr(requests, "get", fake_get)

    client = make_client()
    assert client.authorization_url("s1").startswith("https://dl.test/authorize?response_type=code&client_id=client-1")
    profile = client.fetch_profile("code-9")
    assert profile == DigiLockerProfile(subject="DL-42", name="Asha Verma")
    assert calls == [("POST", "https://dl.test/token", "code-9"), ("GET", "https://dl.test/user", "Bearer at-1")]


def test_digilocker_client_wraps_provider_errors(monkeypatch):
    monkeypatch.setattr(requests, "post", lambda *a, **kw: FakeResponse({}, status=500))
    with pytest.raises(IdentityProviderError):
        make_client().fetch_profile("code")

    monkeypatch.setattr(requests, "post", lambda *a, **kw: FakeResponse({"token_type": "bearer"}))
    with pytest.raises(IdentityProviderError):
        make_client().fetch_profile("code")
