import logging
from datetime import date

from ayu_connect.access_control import Permission, ensure_record_access
from ayu_connect.errors import NotFound, ValidationError
from ayu_connect.models import LogAction, MedicalRecord, RecordFile, RecordType
from .access_log import AccessLogRecorder

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = {
    "type": "type",
    "title": "title",
    "date": "date",
    "hospital": "hospital",
    "doctor": "doctor",
    "description": "description",
    "isEmergencyAccessible": "is_emergency_accessible",
}


def _parse_fields(data, partial):
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")

    values = {}
    for key, attr in EDITABLE_FIELDS.items():
        if key not in data:
            continue
        value = data[key]
        if attr == "type":
            try:
                value = RecordType.parse(value)
            except ValueError as e:
                raise ValidationError(str(e))
        elif attr == "date":
            if value in (None, ""):
                value = None
            else:
                try:
                    value = date.fromisoformat(str(value)[:10])
                except ValueError:
                    raise ValidationError("date must be an ISO date (YYYY-MM-DD)")
        elif attr == "is_emergency_accessible":
            if not isinstance(value, bool):
                raise ValidationError("isEmergencyAccessible must be true or false")
        elif value is not None:
            value = str(value).strip()
        values[attr] = value

    if not partial and not values.get("title"):
        raise ValidationError("title is required")
    if partial and "title" in values and not values["title"]:
        raise ValidationError("title cannot be empty")
    return values


class RecordStore:
    """CRUD over medical records and their attached files, permission-checked."""

    def __init__(self, db, clock, storage):
        self.db = db
        self.clock = clock
        self.storage = storage
        self.log = AccessLogRecorder(db, clock)

    def list_records(self, user_id, record_type=None, origin=None):
        query = self.db.query(MedicalRecord).filter(MedicalRecord.user_id == user_id)
        if record_type:
            try:
                query = query.filter(MedicalRecord.type == RecordType.parse(record_type))
            except ValueError as e:
                raise ValidationError(str(e))
        records = query.order_by(MedicalRecord.date.desc(), MedicalRecord.created_at.desc()).all()

        self.log.record(
            user_id, LogAction.RECORDS_VIEWED, origin, actor_id=user_id,
            details=f"Viewed {len(records)} record(s)" + (f" of type {record_type}" if record_type else ""),
        )
        return records

    def get_record(self, user_id, record_id, origin=None):
        record = ensure_record_access(self.db, user_id, record_id, Permission.READ_RECORD, self.clock.now())
        self.log.record(
            record.user_id, LogAction.RECORD_VIEWED, origin,
            actor_id=user_id, record_id=record.id, details=f"Viewed record: {record.title}",
        )
        return record

    def create_record(self, user_id, data, origin=None):
        values = _parse_fields(data, partial=False)
        values.setdefault("type", RecordType.OTHER)
        now = self.clock.now()
        record = MedicalRecord(user_id=user_id, created_at=now, updated_at=now, **values)
        self.db.add(record)
        self.db.flush()

        self.log.record(
            user_id, LogAction.RECORD_CREATED, origin,
            actor_id=user_id, record_id=record.id, details=f"Created record: {record.title}",
        )
        return record

    def update_record(self, user_id, record_id, data, origin=None):
        record = self._authorize(user_id, record_id, Permission.UPDATE_RECORD, "Not authorized to update this record")
        values = _parse_fields(data, partial=True)
        for attr, value in values.items():
            setattr(record, attr, value)
        record.updated_at = self.clock.now()

        self.log.record(
            user_id, LogAction.RECORD_UPDATED, origin,
            actor_id=user_id, record_id=record.id, details=f"Updated record: {record.title}",
        )
        return record

    def delete_record(self, user_id, record_id, origin=None):
        """Delete a record, its grants and its files.

        Files are staged first and only purged once the database delete has
        committed. Staged files are put back if the commit fails, so a failure
        never leaves a row pointing at a missing file or an unreferenced file.
        Access tokens naming this record are left as they are.
        """
        record = self._authorize(user_id, record_id, Permission.DELETE_RECORD, "Not authorized to delete this record")
        title = record.title

        staged = []
        try:
            for f in record.files:
                staged.append(self.storage.stage_delete(f.user_id, f.filename))
            self.db.delete(record)
            self.log.record(
                user_id, LogAction.RECORD_DELETED, origin,
                actor_id=user_id, record_id=record_id, details=f"Deleted record: {title}",
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            for path in staged:
                self.storage.restore(path)
            logger.exception("[STORAGE] Delete of record %s failed, files restored", record_id)
            raise

        for path in staged:
            self.storage.purge(path)
        return record_id

    # ------------------------------------------------------------------
    # files

    def attach_file(self, user_id, record_id, upload, origin=None):
        record = self._authorize(user_id, record_id, Permission.UPLOAD_FILE, "Not authorized to upload to this record")
        if upload is None:
            raise ValidationError("Please upload a file")

        stored_name, original_name, content_type, size = self.storage.save(user_id, upload)
        try:
            rf = RecordFile(
                record_id=record.id,
                user_id=user_id,
                filename=stored_name,
                original_name=original_name,
                content_type=content_type,
                size=size,
                uploaded_at=self.clock.now(),
            )
            record.files.append(rf)
            self.log.record(
                user_id, LogAction.FILE_UPLOADED, origin, actor_id=user_id, record_id=record.id,
                details=f"Uploaded file: {original_name} to record: {record.title}",
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            self.storage.remove(user_id, stored_name)
            raise
        return rf

    def get_file(self, user_id, record_id, file_id, origin=None):
        """Return ``(RecordFile, bytes)`` for a caller allowed to download it."""
        record = ensure_record_access(self.db, user_id, record_id, Permission.DOWNLOAD_FILE, self.clock.now())
        rf = self._file_of(record, file_id)
        data = self.storage.read(rf.user_id, rf.filename)
        if data is None:
            raise NotFound("File not found")

        self.log.record(
            record.user_id, LogAction.FILE_DOWNLOADED, origin, actor_id=user_id, record_id=record.id,
            details=f"Downloaded file: {rf.original_name} from record: {record.title}",
        )
        return rf, data

    def delete_file(self, user_id, record_id, file_id, origin=None):
        record = self._authorize(
            user_id, record_id, Permission.DELETE_FILE, "Not authorized to delete files from this record"
        )
        rf = self._file_of(record, file_id)
        name = rf.original_name

        staged = self.storage.stage_delete(rf.user_id, rf.filename)
        try:
            record.files.remove(rf)
            self.log.record(
                user_id, LogAction.FILE_DELETED, origin, actor_id=user_id, record_id=record.id,
                details=f"Deleted file: {name} from record: {record.title}",
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            self.storage.restore(staged)
            raise
        self.storage.purge(staged)
        return file_id

    def _authorize(self, user_id, record_id, permission, message):
        return ensure_record_access(self.db, user_id, record_id, permission, self.clock.now(), message=message)

    def _file_of(self, record, file_id):
        for rf in record.files:
            if rf.id == file_id:
                return rf
        raise NotFound("File not found")
