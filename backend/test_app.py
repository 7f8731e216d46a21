import io
import os

import pytest
from werkzeug.datastructures import FileStorage as Upload

from ayu_connect.clock import FrozenClock
from ayu_connect.init_db import create_tables
from ayu_connect.models import MedicalRecord, User
from ayu_connect.services import FileStorage, RecordStore
from conftest import START


# ==================== ENVELOPE ====================

def test_unknown_route_uses_envelope(client):
    r = client.get("/api/nothing-here")
    assert r.status_code == 404
    body = r.get_json()
    assert body["success"] is False
    assert body["message"]


def test_wrong_method_uses_envelope(client):
    r = client.delete("/api/share/generate")
    assert r.status_code == 405
    assert r.get_json()["success"] is False


def test_unexpected_error_is_hidden(app, client):
    @app.route("/boom")
    def boom():
        raise RuntimeError("database password is hunter2")

    r = client.get("/boom")
    assert r.status_code == 500
    assert r.get_json() == {"success": False, "message": "Server error"}


def test_bearer_wins_over_session(client, patient):
    session_id = client.get("/api/digilocker/session").get_json()["data"]["sessionId"]
    client.get("/api/digilocker/callback", query_string={"state": session_id, "code": "xyz"})

    headers = dict(patient["headers"], **{"x-session-id": session_id})
    data = client.get("/api/auth/user", headers=headers).get_json()["data"]
    assert data["authMethod"] == "bearer"
    assert data["id"] == patient["user"]["id"]


# ==================== TWO-PHASE DELETE ====================

@pytest.fixture
def store(database, tmp_path):
    session = database.session()
    session.add(User(id="owner", name="Asha", aadhaar_number="123412341234"))
    session.add(MedicalRecord(id="rec-1", user_id="owner", title="CBC"))
    session.commit()
    yield RecordStore(session, FrozenClock(START), FileStorage(str(tmp_path / "files")))
    session.close()


def attach(store):
    upload = Upload(stream=io.BytesIO(b"%PDF-1.4"), filename="cbc.pdf", content_type="application/pdf")
    rf = store.attach_file("owner", "rec-1", upload)
    return store.storage.path_for("owner", rf.filename)


def test_failed_delete_restores_files(store, monkeypatch):
    path = attach(store)

    def broken_commit():
        raise RuntimeError("disk full")

    monkeypatch.setattr(store.db, "commit", broken_commit)
    with pytest.raises(RuntimeError):
        store.delete_record("owner", "rec-1")
    monkeypatch.undo()

    assert os.path.exists(path)
    assert not os.path.exists(path + ".deleting")
    assert store.db.get(MedicalRecord, "rec-1") is not None


def test_successful_delete_purges_files(store):
    path = attach(store)
    store.delete_record("owner", "rec-1")
    assert not os.path.exists(path)
    assert not os.path.exists(path + ".deleting")
    assert store.db.get(MedicalRecord, "rec-1") is None


def test_init_db_creates_every_table():
    tables = create_tables("sqlite://")
    for name in ("users", "medical_records", "record_files", "shared_grants", "access_tokens",
                 "token_access_events", "access_logs", "otp_challenges", "digilocker_sessions"):
        assert name in tables
