import logging
from datetime import datetime

from ayu_connect.access_control import Permission, ensure_record_access
from ayu_connect.errors import NotFound, ValidationError
from ayu_connect.lifecycle import is_usable
from ayu_connect.models import AccessType, LogAction, MedicalRecord, SharedGrant, User
from .access_log import AccessLogRecorder
from .tokens import parse_minutes

logger = logging.getLogger(__name__)

DEFAULT_LINK_HOURS = 24


def parse_expiry(value, now):
    if value in (None, ""):
        return None
    try:
        expires_at = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        raise ValidationError("expiresAt must be an ISO timestamp")
    if expires_at.tzinfo is not None:
        # Stored timestamps are naive UTC
        expires_at = (expires_at - expires_at.utcoffset()).replace(tzinfo=None)
    if expires_at <= now:
        raise ValidationError("expiresAt must be in the future")
    return expires_at


class SharingService:
    """Record-level grants to known users, plus single-record share links."""

    def __init__(self, db, clock, tokens):
        self.db = db
        self.clock = clock
        self.tokens = tokens
        self.log = AccessLogRecorder(db, clock)

    def find_grantee(self, user_id=None, aadhaar_number=None):
        user = None
        if user_id:
            user = self.db.get(User, str(user_id))
        elif aadhaar_number:
            user = self.db.query(User).filter(User.aadhaar_number == str(aadhaar_number)).first()
        else:
            raise ValidationError("Please provide the user to share with")
        if user is None:
            raise NotFound("User not found")
        return user

    def share_with_user(self, owner_id, record_id, grantee, access_type=None, expires_at=None, origin=None):
        record = ensure_record_access(
            self.db, owner_id, record_id, Permission.SHARE_RECORD, self.clock.now(),
            message="Not authorized to share this record",
        )
        if grantee.id == owner_id:
            raise ValidationError("You cannot share a record with yourself")
        try:
            access = AccessType(access_type or AccessType.VIEW.value)
        except ValueError:
            raise ValidationError("accessType must be 'view' or 'download'")

        now = self.clock.now()
        expires_at = parse_expiry(expires_at, now)

        for grant in record.shared_with:
            if grant.grantee_id != grantee.id or not grant.is_active:
                continue
            if is_usable(grant.state(now)):
                raise ValidationError("Record already shared with this user")
            # Lapsed grant: retire it so the pair keeps a single active grant
            grant.is_active = False
            grant.revoked_at = now

        grant = SharedGrant(
            grantee_id=grantee.id,
            access_type=access,
            expires_at=expires_at,
            is_active=True,
            granted_at=now,
        )
        record.shared_with.append(grant)
        record.is_shared = True
        record.updated_at = now

        self.log.record(
            owner_id, LogAction.GRANT_CREATED, origin, actor_id=owner_id, record_id=record.id, timestamp=now,
            details=f"Shared record: {record.title} with user: {grantee.id} ({access.value})",
        )
        self.db.flush()
        return grant

    def revoke_grant(self, owner_id, record_id, grantee_id, origin=None):
        now = self.clock.now()
        record = ensure_record_access(
            self.db, owner_id, record_id, Permission.SHARE_RECORD, now,
            message="Not authorized to modify sharing for this record",
        )

        revoked = [g for g in record.shared_with if g.grantee_id == grantee_id and g.is_active]
        if not revoked:
            raise NotFound("Record is not shared with this user")
        for grant in revoked:
            grant.is_active = False
            grant.revoked_at = now

        record.is_shared = any(
            is_usable(g.state(now)) for g in record.shared_with
        )
        record.updated_at = now
        self.log.record(
            owner_id, LogAction.GRANT_REVOKED, origin, actor_id=owner_id, record_id=record.id, timestamp=now,
            details=f"Revoked access to record: {record.title} for user ID: {grantee_id}",
        )
        return record

    def shared_by_me(self, owner_id):
        """Owned records with at least one grant that is still usable."""
        now = self.clock.now()
        records = (
            self.db.query(MedicalRecord)
            .filter(MedicalRecord.user_id == owner_id, MedicalRecord.is_shared == True)  # noqa: E712
            .order_by(MedicalRecord.updated_at.desc())
            .all()
        )
        # is_shared is not cleared when a grant lapses on its own
        return [r for r in records if r.usable_grants(now)]

    def shared_with_me(self, user_id):
        """``(record, grant)`` pairs the user can currently read; lapsed grants are skipped."""
        now = self.clock.now()
        rows = (
            self.db.query(MedicalRecord, SharedGrant)
            .join(SharedGrant, SharedGrant.record_id == MedicalRecord.id)
            .filter(SharedGrant.grantee_id == user_id, SharedGrant.is_active == True)  # noqa: E712
            .order_by(SharedGrant.granted_at.desc())
            .all()
        )
        return [(r, g) for r, g in rows if is_usable(g.state(now))]

    def generate_share_link(self, owner_id, record_id, expires_in_hours=None, origin=None):
        ensure_record_access(
            self.db, owner_id, record_id, Permission.SHARE_RECORD, self.clock.now(),
            message="Not authorized to share this record",
        )
        hours = parse_minutes(
            DEFAULT_LINK_HOURS if expires_in_hours in (None, "") else expires_in_hours,
            self.tokens.max_minutes // 60,
            name="expiresIn",
        )
        return self.tokens.issue_share_token(owner_id, [record_id], hours * 60, origin)
