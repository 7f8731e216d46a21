"""Issuance, resolution, revocation and extension of access tokens.

Share tokens are time-boxed; emergency tokens never expire and stay usable
until their owner revokes them. Expiry is evaluated lazily whenever a token is
resolved, using one clock read per operation so the expiry check and the log
entry it produces agree on the time.
"""
import logging
import secrets
from dataclasses import dataclass, field
from datetime import timedelta

from ayu_connect.errors import Forbidden, NotFound, TokenExpired, TokenRevoked, ValidationError
from ayu_connect.lifecycle import AccessState, seconds_remaining
from ayu_connect.models import (
    AccessToken, ExtensionStatus, LogAction, MedicalRecord, TokenAccessEvent, TokenKind,
)
from .access_log import AccessLogRecorder, Origin

logger = logging.getLogger(__name__)

TOKEN_BYTES = 32


@dataclass
class TokenResolution:
    token: AccessToken
    state: AccessState
    now: object
    records: list = field(default_factory=list)
    missing_record_ids: list = field(default_factory=list)

    @property
    def record_ids(self):
        return list(self.token.record_ids or [])

    @property
    def seconds_remaining(self):
        return seconds_remaining(self.token.expires_at, self.now)


def normalize_record_ids(record_ids):
    """Validate a record selection and collapse duplicates, keeping order."""
    if record_ids is None or isinstance(record_ids, (str, bytes)) or not hasattr(record_ids, "__iter__"):
        raise ValidationError("recordIds must be a list of record ids")
    ids = []
    for record_id in record_ids:
        if not isinstance(record_id, (str, int)) or isinstance(record_id, bool) or str(record_id).strip() == "":
            raise ValidationError("recordIds must be a list of record ids")
        ids.append(str(record_id).strip())
    ids = list(dict.fromkeys(ids))
    if not ids:
        raise ValidationError("Please select at least one record")
    return ids


def parse_minutes(value, maximum, name="minutes"):
    if isinstance(value, bool):
        raise ValidationError(f"{name} must be a positive whole number")
    try:
        minutes = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{name} must be a positive whole number")
    if minutes != value and str(minutes) != str(value).strip():
        raise ValidationError(f"{name} must be a positive whole number")
    if minutes <= 0:
        raise ValidationError(f"{name} must be a positive whole number")
    if maximum and minutes > maximum:
        raise ValidationError(f"{name} cannot exceed {maximum}")
    return minutes


class AccessTokenManager:
    def __init__(self, db, clock, frontend_url="http://localhost:3000", warn_seconds=120,
                 max_minutes=7 * 24 * 60, default_extension_minutes=15):
        self.db = db
        self.clock = clock
        self.frontend_url = frontend_url.rstrip("/")
        self.warn_seconds = warn_seconds
        self.max_minutes = max_minutes
        self.default_extension_minutes = default_extension_minutes
        self.log = AccessLogRecorder(db, clock)

    # ------------------------------------------------------------------
    # issuance

    def issue_share_token(self, owner_id, record_ids, ttl_minutes, origin=None):
        ttl = parse_minutes(ttl_minutes, self.max_minutes, name="expiryMinutes")
        ids, _ = self._owned_records(owner_id, record_ids, "You can only share your own records")
        now = self.clock.now()

        token = self._create(owner_id, TokenKind.SHARE, ids, now, expires_at=now + timedelta(minutes=ttl))
        self.log.record(
            owner_id, LogAction.SHARE_CREATED, origin,
            actor_id=owner_id, token_id=token.id, timestamp=now,
            details=f"Shared {len(ids)} record(s) for {ttl} minutes",
        )
        logger.info("[SHARE] User %s issued token %s for %d record(s), %d min", owner_id, token.id, len(ids), ttl)
        return token

    def issue_emergency_token(self, owner_id, record_ids, contact="", info="", origin=None):
        ids, records = self._owned_records(
            owner_id, record_ids, "You can only include your own records in emergency access"
        )
        now = self.clock.now()

        token = self._create(
            owner_id, TokenKind.EMERGENCY, ids, now,
            emergency_contact="" if contact is None else str(contact),
            additional_info="" if info is None else str(info),
        )
        for record in records:
            record.is_emergency_accessible = True

        self.log.record(
            owner_id, LogAction.EMERGENCY_CREATED, origin,
            actor_id=owner_id, token_id=token.id, timestamp=now,
            details=f"Generated emergency access token for {len(ids)} record(s)",
        )
        logger.info("[EMERGENCY] User %s issued emergency token %s", owner_id, token.id)
        return token

    def _owned_records(self, owner_id, record_ids, message):
        ids = normalize_record_ids(record_ids)
        records = (
            self.db.query(MedicalRecord)
            .filter(MedicalRecord.id.in_(ids), MedicalRecord.user_id == owner_id)
            .all()
        )
        # All-or-nothing: one foreign or missing id rejects the whole selection
        if len(records) != len(ids):
            raise Forbidden(message)
        return ids, records

    def _create(self, owner_id, kind, ids, now, **fields):
        value = self._new_token_value()
        token = AccessToken(
            user_id=owner_id,
            token=value,
            kind=kind,
            record_ids=ids,
            is_active=True,
            access_url=self.access_url(kind, value),
            created_at=now,
            **fields,
        )
        self.db.add(token)
        self.db.flush()
        return token

    def _new_token_value(self):
        while True:
            value = secrets.token_urlsafe(TOKEN_BYTES)
            if not self.db.query(AccessToken.id).filter(AccessToken.token == value).first():
                return value

    def access_url(self, kind, value):
        path = "emergency" if kind == TokenKind.EMERGENCY else "access"
        return f"{self.frontend_url}/{path}/{value}"

    # ------------------------------------------------------------------
    # resolution

    def resolve_token(self, token_string, origin=None, kind=None):
        now = self.clock.now()
        token = self._find_by_value(token_string, kind)

        state = token.state(now, self.warn_seconds)
        if state == AccessState.EXPIRED:
            raise TokenExpired()
        if state == AccessState.REVOKED:
            raise TokenRevoked()

        origin = origin or Origin()
        # One row per access; concurrent resolutions never overwrite each other
        self.db.add(TokenAccessEvent(
            token_id=token.id,
            accessed_at=now,
            ip_address=origin.ip_address,
            user_agent=origin.user_agent,
        ))

        ids = list(token.record_ids or [])
        found = {
            r.id: r for r in self.db.query(MedicalRecord).filter(MedicalRecord.id.in_(ids)).all()
        } if ids else {}
        records = [found[i] for i in ids if i in found]
        missing = [i for i in ids if i not in found]

        action = LogAction.EMERGENCY_ACCESSED if token.is_emergency else LogAction.SHARE_ACCESSED
        self.log.record(
            token.user_id, action, origin,
            token_id=token.id, timestamp=now,
            details=f"Access token used to view {len(records)} record(s)",
        )
        if missing:
            logger.warning("[SHARE] Token %s references missing records %s", token.id, missing)
        self.db.flush()
        return TokenResolution(token=token, state=state, now=now, records=records, missing_record_ids=missing)

    def _find_by_value(self, token_string, kind=None):
        if not token_string:
            raise NotFound("Invalid access token")
        token = self.db.query(AccessToken).filter(AccessToken.token == token_string).first()
        if token is None or (kind is not None and token.kind != kind):
            raise NotFound("Invalid access token")
        return token

    # ------------------------------------------------------------------
    # revocation

    def revoke_token(self, owner_id, token_id, origin=None, kind=None):
        token = self.db.get(AccessToken, token_id) if token_id else None
        if token is None or (kind is not None and token.kind != kind):
            raise NotFound("Access token not found")
        return self._revoke(owner_id, token, origin)

    def revoke_by_token_string(self, owner_id, token_string, origin=None, kind=None):
        token = self._find_by_value(token_string, kind)
        return self._revoke(owner_id, token, origin)

    def _revoke(self, owner_id, token, origin):
        if token.user_id != owner_id:
            raise Forbidden("Not authorized to revoke this token")
        if not token.is_active:
            # Revocation is terminal; repeating it changes nothing
            return token

        now = self.clock.now()
        token.is_active = False
        token.revoked_at = now
        action = LogAction.EMERGENCY_REVOKED if token.is_emergency else LogAction.SHARE_REVOKED
        self.log.record(
            owner_id, action, origin,
            actor_id=owner_id, token_id=token.id, timestamp=now,
            details="Revoked emergency access token" if token.is_emergency else "Revoked share token",
        )
        logger.info("[SHARE] User %s revoked token %s", owner_id, token.id)
        return token

    # ------------------------------------------------------------------
    # extensions

    def request_extension(self, token_string, reason, origin=None):
        token = self._find_by_value(token_string)
        if token.is_emergency:
            raise ValidationError("Emergency tokens do not expire and cannot be extended")

        reason = (reason or "").strip() if isinstance(reason, str) else ""
        if not reason:
            raise ValidationError("Please provide a reason for the extension request")

        now = self.clock.now()
        state = token.state(now, self.warn_seconds)
        if state == AccessState.EXPIRED:
            raise TokenExpired()
        if state == AccessState.REVOKED:
            raise TokenRevoked()

        # Last request wins; there is never more than one pending request
        token.extension_status = ExtensionStatus.PENDING
        token.extension_reason = reason
        token.extension_requested_at = now
        token.extension_decided_at = None

        self.log.record(
            token.user_id, LogAction.EXTENSION_REQUESTED, origin,
            token_id=token.id, timestamp=now, details=reason,
        )
        return token

    def decide_extension(self, owner_id, token_id, granted, minutes=None, origin=None):
        token = self.db.get(AccessToken, token_id) if token_id else None
        if token is None:
            raise NotFound("Access token not found")
        if token.user_id != owner_id:
            raise Forbidden("Not authorized to manage this token")
        if token.extension_status != ExtensionStatus.PENDING:
            raise ValidationError("No pending extension request for this token")

        now = self.clock.now()
        if granted:
            minutes = parse_minutes(
                self.default_extension_minutes if minutes is None else minutes,
                self.max_minutes,
            )
            state = token.state(now, self.warn_seconds)
            if state == AccessState.EXPIRED:
                raise TokenExpired("Access token has already expired and cannot be extended")
            if state == AccessState.REVOKED:
                raise TokenRevoked()

            token.expires_at = token.expires_at + timedelta(minutes=minutes)
            token.extension_status = ExtensionStatus.GRANTED
            action = LogAction.EXTENSION_GRANTED
            details = f"Extended access by {minutes} minutes"
        else:
            token.extension_status = ExtensionStatus.DENIED
            action = LogAction.EXTENSION_DENIED
            details = "Extension request denied"

        token.extension_decided_at = now
        self.log.record(owner_id, action, origin, actor_id=owner_id, token_id=token.id, timestamp=now, details=details)
        logger.info("[SHARE] User %s %s extension for token %s", owner_id, token.extension_status.value, token.id)
        return token

    # ------------------------------------------------------------------
    # listings

    def list_tokens(self, owner_id, kind=None):
        query = self.db.query(AccessToken).filter(AccessToken.user_id == owner_id)
        if kind is not None:
            query = query.filter(AccessToken.kind == kind)
        return query.order_by(AccessToken.created_at.desc()).all()

    def list_access_events(self, owner_id, kind=None):
        """Flattened access history across the owner's tokens, newest first."""
        query = (
            self.db.query(TokenAccessEvent, AccessToken)
            .join(AccessToken, TokenAccessEvent.token_id == AccessToken.id)
            .filter(AccessToken.user_id == owner_id)
        )
        if kind is not None:
            query = query.filter(AccessToken.kind == kind)
        return query.order_by(TokenAccessEvent.accessed_at.desc(), TokenAccessEvent.id.desc()).all()
