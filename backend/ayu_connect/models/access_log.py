import enum

from sqlalchemy import Column, Integer, String, Boolean, DateTime, Enum, Text

from ayu_connect.database import Base


class LogAction(enum.Enum):
    LOGIN = "LOGIN"
    RECORDS_VIEWED = "RECORDS_VIEWED"
    RECORD_VIEWED = "RECORD_VIEWED"
    RECORD_CREATED = "RECORD_CREATED"
    RECORD_UPDATED = "RECORD_UPDATED"
    RECORD_DELETED = "RECORD_DELETED"
    FILE_UPLOADED = "FILE_UPLOADED"
    FILE_DOWNLOADED = "FILE_DOWNLOADED"
    FILE_DELETED = "FILE_DELETED"
    GRANT_CREATED = "GRANT_CREATED"
    GRANT_REVOKED = "GRANT_REVOKED"
    SHARE_CREATED = "SHARE_CREATED"
    SHARE_ACCESSED = "SHARE_ACCESSED"
    SHARE_REVOKED = "SHARE_REVOKED"
    EMERGENCY_CREATED = "EMERGENCY_CREATED"
    EMERGENCY_ACCESSED = "EMERGENCY_ACCESSED"
    EMERGENCY_REVOKED = "EMERGENCY_REVOKED"
    EXTENSION_REQUESTED = "EXTENSION_REQUESTED"
    EXTENSION_GRANTED = "EXTENSION_GRANTED"
    EXTENSION_DENIED = "EXTENSION_DENIED"


class Channel(enum.Enum):
    WEB = "web"
    MOBILE = "mobile"
    QR = "qr"
    EMERGENCY = "emergency"
    API = "api"


class AccessLog(Base):
    __tablename__ = "access_logs"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    user_id = Column(String(36), index=True)  # whose data the entry concerns
    actor_id = Column(String(36), nullable=True)  # None for anonymous token holders
    record_id = Column(String(36), nullable=True)
    token_id = Column(String(36), nullable=True)
    action = Column(Enum(LogAction), nullable=False)
    channel = Column(Enum(Channel), nullable=False, default=Channel.WEB)
    ip_address = Column(String(45))
    user_agent = Column(Text)
    timestamp = Column(DateTime, nullable=False)
    success = Column(Boolean, default=True, nullable=False)
    details = Column(Text)

    def to_dict(self):
        return {
            "id": self.id,
            "userId": self.user_id,
            "actorId": self.actor_id,
            "recordId": self.record_id,
            "tokenId": self.token_id,
            "action": self.action.value,
            "channel": self.channel.value,
            "ipAddress": self.ip_address,
            "userAgent": self.user_agent,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
            "success": self.success,
            "details": self.details,
        }
