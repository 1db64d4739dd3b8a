import threading
from datetime import datetime, timedelta

import pytest

from ochat.core.config import settings
from ochat.core.errors import NotFoundError
from ochat.models.file_record import FileRecord
from ochat.services import file_service
from ochat.services.file_service import FileService, FileSweeper, image_data_url


@pytest.fixture
def files(db_session, tmp_path):
    return FileService(db_session, upload_dir=tmp_path)


def test_store_and_get(files):
    """Stored bytes land under a random name and expire after the TTL."""
    now = datetime(2024, 1, 1, 12, 0, 0)
    record = files.store(b"hello", "notes.txt", "text/plain", now=now)

    assert record.original_name == "notes.txt"
    assert record.filename != "notes.txt"
    assert record.filename.endswith(".txt")
    assert record.expires_at == now + timedelta(hours=settings.FILE_TTL_HOURS)
    assert files.path_for(record).read_bytes() == b"hello"
    assert files.get(record.id, now=now).id == record.id


def test_expired_file_reads_as_missing(files):
    now = datetime(2024, 1, 1, 12, 0, 0)
    record = files.store(b"x", "a.bin", "application/octet-stream", now=now)
    later = now + timedelta(hours=settings.FILE_TTL_HOURS, seconds=1)
    with pytest.raises(NotFoundError):
        files.get(record.id, now=later)


def test_delete_expired(files, db_session):
    """The sweep removes expired records and their bytes only."""
    now = datetime(2024, 1, 1, 12, 0, 0)
    old = files.store(b"old", "old.txt", "text/plain", now=now - timedelta(days=2))
    fresh = files.store(b"new", "new.txt", "text/plain", now=now)
    old_path = files.path_for(old)

    assert files.delete_expired(now=now) == 1
    assert not old_path.exists()
    assert files.path_for(fresh).exists()
    assert db_session.query(FileRecord).count() == 1


def test_sweep_once_uses_fresh_session(session_factory, db_session, monkeypatch):
    """One sweep opens its own session and removes expired records and bytes."""
    monkeypatch.setattr(file_service, "SessionLocal", session_factory)
    service = FileService(db_session)
    expired = service.store(b"old", "old.txt", "text/plain", now=datetime.now() - timedelta(days=2))
    fresh = service.store(b"new", "new.txt", "text/plain")
    expired_path = service.path_for(expired)

    assert FileSweeper(interval_seconds=60).sweep_once() == 1

    db_session.expire_all()
    assert not expired_path.exists()
    assert [r.id for r in db_session.query(FileRecord).all()] == [fresh.id]


def test_sweeper_thread_runs_and_stops():
    """The background thread sweeps on its interval and joins on stop."""
    swept = threading.Event()
    sweeper = FileSweeper(interval_seconds=0.01)
    sweeper.sweep_once = lambda: swept.set() or 0

    sweeper.start()
    thread = sweeper._thread
    try:
        assert swept.wait(timeout=2)
    finally:
        sweeper.stop()

    assert thread is not None and not thread.is_alive()
    assert sweeper._thread is None


def test_sweeper_survives_failed_iteration():
    """A sweep that raises is logged and the loop keeps going."""
    calls = []
    recovered = threading.Event()

    def flaky_sweep():
        calls.append(1)
        if len(calls) == 1:
            raise RuntimeError("disk unavailable")
        recovered.set()
        return 0

    sweeper = FileSweeper(interval_seconds=0.01)
    sweeper.sweep_once = flaky_sweep
    sweeper.start()
    try:
        assert recovered.wait(timeout=2)
    finally:
        sweeper.stop()
    assert len(calls) >= 2


def test_module_sweeper_start_and_stop(monkeypatch):
    """start_file_sweeper runs a single sweeper until stop_file_sweeper."""
    monkeypatch.setattr(settings, "FILE_SWEEP_INTERVAL_SECONDS", 3600)
    file_service.start_file_sweeper()
    try:
        first = file_service._sweeper
        assert first is not None and first.interval == 3600
        file_service.start_file_sweeper()
        assert file_service._sweeper is first
    finally:
        file_service.stop_file_sweeper()
    assert file_service._sweeper is None


def test_image_data_url():
    assert image_data_url(b"abc", "image/png") == "data:image/png;base64,YWJj"


# HTTP

def test_inline_image_upload(client):
    response = client.post("/api/upload", files={"image": ("dot.png", b"\x89PNG", "image/png")})
    assert response.status_code == 200
    assert response.json()["url"].startswith("data:image/png;base64,")


def test_inline_upload_rejects_non_images(client):
    response = client.post("/api/upload", files={"image": ("a.txt", b"text", "text/plain")})
    assert response.status_code == 400


def test_inline_upload_size_limit(client, monkeypatch):
    monkeypatch.setattr(settings, "MAX_IMAGE_BYTES", 4)
    response = client.post("/api/upload", files={"image": ("big.png", b"12345", "image/png")})
    assert response.status_code == 413


def test_file_upload_and_download(client):
    response = client.post(
        "/api/files",
        files={"file": ("report.csv", b"a,b\n1,2\n", "text/csv")},
        data={"messageId": "5"},
    )
    assert response.status_code == 201
    info = response.json()
    assert info["originalName"] == "report.csv"
    assert info["messageId"] == 5
    assert info["size"] == 8

    response = client.get(info["url"])
    assert response.status_code == 200
    assert response.content == b"a,b\n1,2\n"

    assert client.get(f"/api/files/{info['id']}/info").json()["id"] == info["id"]
    assert client.get("/api/files/999").status_code == 404


def test_file_upload_size_limit(client, monkeypatch):
    monkeypatch.setattr(settings, "MAX_FILE_BYTES", 3)
    response = client.post("/api/files", files={"file": ("a.bin", b"abcd", "application/octet-stream")})
    assert response.status_code == 413


if __name__ == "__main__":
    pytest.main([__file__])
