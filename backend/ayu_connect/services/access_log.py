from dataclasses import dataclass

from ayu_connect.models import AccessLog, Channel, LogAction


@dataclass(frozen=True)
class Origin:
    """Where a request came from, captured once per request for the audit trail."""

    ip_address: str = None
    user_agent: str = None
    channel: Channel = Channel.WEB


class AccessLogRecorder:
    """Append-only writer for access log entries.

    Entries are added to the caller's session so they commit (or roll back)
    together with the action they describe. Nothing here updates or deletes.
    """

    def __init__(self, db, clock):
        self.db = db
        self.clock = clock

    def record(self, user_id, action, origin=None, actor_id=None, record_id=None,
               token_id=None, details=None, success=True, timestamp=None):
        origin = origin or Origin()
        entry = AccessLog(
            user_id=user_id,
            actor_id=actor_id,
            record_id=record_id,
            token_id=token_id,
            action=action,
            channel=origin.channel,
            ip_address=origin.ip_address,
            user_agent=origin.user_agent,
            timestamp=timestamp or self.clock.now(),
            success=success,
            details=details,
        )
        self.db.add(entry)
        return entry

    def for_user(self, user_id, limit=200, actions=None):
        query = self.db.query(AccessLog).filter(AccessLog.user_id == user_id)
        if actions:
            query = query.filter(AccessLog.action.in_(list(actions)))
        return query.order_by(AccessLog.timestamp.desc(), AccessLog.id.desc()).limit(limit).all()

    def logins(self, user_id, limit=50):
        return self.for_user(user_id, limit=limit, actions=[LogAction.LOGIN])
