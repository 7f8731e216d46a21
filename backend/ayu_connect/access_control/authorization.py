from ayu_connect.errors import Forbidden, NotFound
from ayu_connect.lifecycle import is_usable
from ayu_connect.models import MedicalRecord
from .rbac import EMERGENCY_PERMISSIONS, has_permission


def find_active_grant(record, user_id, now):
    """Return the usable grant ``user_id`` holds on ``record``, if any."""
    for grant in record.shared_with:
        if grant.grantee_id != user_id:
            continue
        if is_usable(grant.state(now)):
            return grant
    return None


def check_record_access(user_id, record, action, now):
    """Check if user can perform ``action`` on a specific medical record"""
    if record is None:
        return False, "Record not found"

    # Owners can do anything with their own records
    if record.user_id == user_id:
        return True, "Owner access"

    grant = find_active_grant(record, user_id, now)
    if grant and has_permission(grant.access_type.value, action):
        return True, "Grant-based access"

    if record.is_emergency_accessible and action in EMERGENCY_PERMISSIONS:
        return True, "Emergency access"

    return False, "Access denied"


def ensure_record_access(db, user_id, record_id, action, now, message=None):
    """Load a record and raise unless ``user_id`` may perform ``action`` on it."""
    record = db.get(MedicalRecord, record_id)
    if record is None:
        raise NotFound("Record not found")
    has_access, reason = check_record_access(user_id, record, action, now)
    if not has_access:
        raise Forbidden(message or f"Not authorized to access this record: {reason}")
    return record
