import enum

from sqlalchemy import Column, Integer, String, DateTime, Enum

from ayu_connect.database import Base


class OtpChallenge(Base):
    __tablename__ = "otp_challenges"

    id = Column(Integer, primary_key=True, autoincrement=True)
    aadhaar_number = Column(String(12), index=True, nullable=False)
    code_hash = Column(String(255), nullable=False)
    created_at = Column(DateTime, nullable=False)
    expires_at = Column(DateTime, nullable=False)
    attempts = Column(Integer, default=0, nullable=False)
    consumed_at = Column(DateTime, nullable=True)


class SessionState(enum.Enum):
    PENDING = "pending"
    AUTHENTICATED = "authenticated"
    FAILED = "failed"


class DigiLockerSession(Base):
    __tablename__ = "digilocker_sessions"

    session_id = Column(String(64), primary_key=True)
    state = Column(Enum(SessionState), nullable=False, default=SessionState.PENDING)
    user_id = Column(String(36), nullable=True)
    created_at = Column(DateTime, nullable=False)
    expires_at = Column(DateTime, nullable=False)

    def to_dict(self):
        return {
            "sessionId": self.session_id,
            "state": self.state.value,
            "userId": self.user_id,
            "expiresAt": self.expires_at.isoformat() if self.expires_at else None,
        }
