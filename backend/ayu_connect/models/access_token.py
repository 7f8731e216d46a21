import enum
from uuid import uuid4

from sqlalchemy import Column, String, Boolean, DateTime, Enum, Text, Integer, JSON, ForeignKey
from sqlalchemy.orm import relationship

from ayu_connect.clock import utcnow
from ayu_connect.database import Base
from ayu_connect.lifecycle import evaluate, seconds_remaining


class TokenKind(enum.Enum):
    SHARE = "share"
    EMERGENCY = "emergency"


class ExtensionStatus(enum.Enum):
    PENDING = "pending"
    GRANTED = "granted"
    DENIED = "denied"


class AccessToken(Base):
    __tablename__ = "access_tokens"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid4()))
    user_id = Column(String(36), index=True, nullable=False)
    token = Column(String(128), unique=True, index=True, nullable=False)
    kind = Column(Enum(TokenKind), nullable=False)
    # Ordered ids, not foreign keys: deleting a record leaves the token alone
    record_ids = Column(JSON, nullable=False, default=list)
    expires_at = Column(DateTime, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    emergency_contact = Column(Text, default="")
    additional_info = Column(Text, default="")
    access_url = Column(String(500), nullable=False)
    created_at = Column(DateTime, default=utcnow)
    revoked_at = Column(DateTime, nullable=True)

    extension_status = Column(Enum(ExtensionStatus), nullable=True)
    extension_reason = Column(Text, nullable=True)
    extension_requested_at = Column(DateTime, nullable=True)
    extension_decided_at = Column(DateTime, nullable=True)

    access_events = relationship(
        "TokenAccessEvent",
        back_populates="token",
        cascade="all, delete-orphan",
        order_by="TokenAccessEvent.id",
    )

    @property
    def is_emergency(self):
        return self.kind == TokenKind.EMERGENCY

    def state(self, now, warn_seconds=0):
        return evaluate(self.is_active, self.expires_at, now, warn_seconds)

    def to_dict(self, now, warn_seconds=0):
        data = {
            "id": self.id,
            "accessToken": self.token,
            "kind": self.kind.value,
            "recordIds": list(self.record_ids or []),
            "accessUrl": self.access_url,
            "expiresAt": self.expires_at.isoformat() if self.expires_at else None,
            "secondsRemaining": seconds_remaining(self.expires_at, now),
            "isActive": self.is_active,
            "status": self.state(now, warn_seconds).value,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "revokedAt": self.revoked_at.isoformat() if self.revoked_at else None,
            "accessCount": len(self.access_events),
        }
        if self.is_emergency:
            data["emergencyContact"] = self.emergency_contact
            data["additionalInfo"] = self.additional_info
        else:
            data["extension"] = self.extension_to_dict()
        return data

    def extension_to_dict(self):
        if self.extension_status is None:
            return None
        return {
            "status": self.extension_status.value,
            "reason": self.extension_reason,
            "requestedAt": self.extension_requested_at.isoformat() if self.extension_requested_at else None,
            "decidedAt": self.extension_decided_at.isoformat() if self.extension_decided_at else None,
        }


class TokenAccessEvent(Base):
    __tablename__ = "token_access_events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    token_id = Column(String(36), ForeignKey("access_tokens.id", ondelete="CASCADE"), index=True)
    accessed_at = Column(DateTime, nullable=False)
    ip_address = Column(String(45))
    user_agent = Column(Text)

    token = relationship("AccessToken", back_populates="access_events")

    def to_dict(self):
        return {
            "tokenId": self.token_id,
            "accessedAt": self.accessed_at.isoformat() if self.accessed_at else None,
            "ipAddress": self.ip_address,
            "userAgent": self.user_agent,
        }
