import io
from datetime import datetime

import pytest

from ayu_connect import create_app
from ayu_connect.clock import FrozenClock
from ayu_connect.config import TestConfig
from ayu_connect.database import Database
from ayu_connect.services import DigiLockerProfile, IdentityProviderError

START = datetime(2024, 3, 1, 9, 0, 0)

PATIENT_AADHAAR = "123412341234"
DOCTOR_AADHAAR = "987698769876"


class FakeDigiLocker:
    """Stands in for the provider: any code except ``bad-code`` yields a profile."""

    def __init__(self):
        self.codes = []

    def authorization_url(self, state):
        return f"https://digilocker.test/authorize?state={state}"

    def fetch_profile(self, code):
        self.codes.append(code)
        if code == "bad-code":
            raise IdentityProviderError("token exchange rejected")
        return DigiLockerProfile(subject=f"DL-{code}", name="Asha Verma")


@pytest.fixture
def clock():
    return FrozenClock(START)


@pytest.fixture
def digilocker():
    return FakeDigiLocker()


@pytest.fixture
def app(tmp_path, clock, digilocker):
    app = create_app(
        TestConfig,
        clock=clock,
        digilocker=digilocker,
        UPLOAD_FOLDER=str(tmp_path / "uploads"),
        FRONTEND_URL="http://frontend.test",
    )
    yield app
    app.extensions["ayu_connect"].database.dispose()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def database():
    """Bare database for service-level tests."""
    db = Database("sqlite://")
    db.create_all()
    yield db
    db.dispose()


def login(client, aadhaar=PATIENT_AADHAAR, name=None):
    """Run the OTP flow and return (auth headers, user dict)."""
    r = client.post("/api/auth/aadhaar", json={"aadhaarNumber": aadhaar})
    assert r.status_code == 200, r.get_json()
    otp = r.get_json()["data"]["devOtp"]

    body = {"aadhaarNumber": aadhaar, "otp": otp}
    if name:
        body["name"] = name
    r = client.post("/api/auth/verify-otp", json=body)
    assert r.status_code == 200, r.get_json()
    data = r.get_json()["data"]
    return {"Authorization": f"Bearer {data['token']}"}, data["user"]


def create_record(client, headers, title="Blood Test", **fields):
    body = {"title": title, "type": "Lab Report", "date": "2024-02-20", "hospital": "City Hospital"}
    body.update(fields)
    r = client.post("/api/records", json=body, headers=headers)
    assert r.status_code == 201, r.get_json()
    return r.get_json()["data"]


def pdf_upload(name="report.pdf", content=b"%PDF-1.4 test report"):
    return {"file": (io.BytesIO(content), name, "application/pdf")}


@pytest.fixture
def patient(client):
    headers, user = login(client, PATIENT_AADHAAR, name="Asha Verma")
    return {"headers": headers, "user": user}


@pytest.fixture
def doctor(client):
    headers, user = login(client, DOCTOR_AADHAAR, name="Dr. Patel")
    return {"headers": headers, "user": user}
