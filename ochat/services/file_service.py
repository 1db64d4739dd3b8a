"""Ephemeral file uploads and the background sweep that expires them."""
import base64
import logging
import secrets
import threading
from datetime import datetime, timedelta
from pathlib import Path
from typing import List, Optional

from sqlalchemy.orm import Session

from ochat.core.config import settings
from ochat.core.database import SessionLocal
from ochat.core.errors import NotFoundError
from ochat.models.file_record import FileRecord
from ochat.services.activity_logger import log_sweep, log_upload

logger = logging.getLogger(__name__)


def image_data_url(data: bytes, mime_type: str) -> str:
    """Inline images are returned as data URLs and never stored."""
    encoded = base64.b64encode(data).decode("ascii")
    return f"data:{mime_type};base64,{encoded}"


def _stored_name(original_name: str) -> str:
    suffix = Path(original_name).suffix.lower()
    if len(suffix) > 10 or not suffix[1:].isalnum():
        suffix = ""
    return f"{secrets.token_hex(16)}{suffix}"


class FileService:
    _lock = threading.RLock()

    def __init__(self, db: Session, upload_dir: Optional[Path] = None):
        self.db = db
        self.upload_dir = Path(upload_dir) if upload_dir is not None else settings.upload_path

    def path_for(self, record: FileRecord) -> Path:
        return self.upload_dir / str(record.filename)

    def store(
        self,
        data: bytes,
        original_name: str,
        mime_type: str,
        message_id: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> FileRecord:
        uploaded_at = now or datetime.now()
        filename = _stored_name(original_name)
        self.upload_dir.mkdir(parents=True, exist_ok=True)
        (self.upload_dir / filename).write_bytes(data)

        record = FileRecord(
            message_id=message_id,
            filename=filename,
            original_name=original_name,
            size=len(data),
            mime_type=mime_type,
            uploaded_at=uploaded_at,
            expires_at=uploaded_at + timedelta(hours=settings.FILE_TTL_HOURS),
        )
        self.db.add(record)
        self.db.commit()
        self.db.refresh(record)
        log_upload(record.id, original_name, len(data))
        return record

    def get(self, file_id: int, now: Optional[datetime] = None) -> FileRecord:
        """Return an unexpired record; expired ones read as missing."""
        current = now or datetime.now()
        record = self.db.query(FileRecord).filter(FileRecord.id == file_id).first()
        if record is None or current > record.expires_at:
            raise NotFoundError("File not found")
        return record

    def attach(self, file_id: int, message_id: int) -> FileRecord:
        record = self.get(file_id)
        setattr(record, "message_id", message_id)
        self.db.commit()
        self.db.refresh(record)
        return record

    def delete_expired(self, now: Optional[datetime] = None) -> int:
        """Delete records (and their bytes) whose ``expires_at`` has passed."""
        current = now or datetime.now()
        with self._lock:
            expired: List[FileRecord] = self.db.query(FileRecord).filter(
                FileRecord.expires_at < current
            ).all()
            for record in expired:
                path = self.path_for(record)
                try:
                    path.unlink(missing_ok=True)
                except OSError as e:
                    logger.warning(f"Could not remove expired file {path}: {e}")
                self.db.delete(record)
            self.db.commit()
        return len(expired)


class FileSweeper:
    """Runs ``FileService.delete_expired`` on a fixed interval."""

    def __init__(self, interval_seconds: Optional[float] = None):
        self.interval = float(
            interval_seconds if interval_seconds is not None else settings.FILE_SWEEP_INTERVAL_SECONDS
        )
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def sweep_once(self) -> int:
        db = SessionLocal()
        try:
            removed = FileService(db).delete_expired()
        finally:
            db.close()
        if removed:
            log_sweep(removed)
        return removed

    def start(self) -> None:
        """Start sweeping in a background thread."""
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="file-sweeper", daemon=True)
        self._thread.start()
        logger.info("FileSweeper started (interval=%ss)", self.interval)

    def _run(self) -> None:
        while not self._stop.wait(self.interval):
            try:
                self.sweep_once()
            except Exception:
                logger.exception("File sweep failed")

    def stop(self) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=5)
            self._thread = None
        logger.info("FileSweeper stopped")


_sweeper: Optional[FileSweeper] = None


def start_file_sweeper() -> None:
    """Start the expiry sweeper (call on app startup)."""
    global _sweeper
    if _sweeper is None:
        _sweeper = FileSweeper()
        _sweeper.start()


def stop_file_sweeper() -> None:
    """Stop the expiry sweeper (call on app shutdown)."""
    global _sweeper
    if _sweeper:
        _sweeper.stop()
        _sweeper = None
