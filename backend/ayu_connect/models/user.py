from uuid import uuid4

from sqlalchemy import Column, String, DateTime

from ayu_connect.clock import utcnow
from ayu_connect.database import Base


class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid4()))
    name = Column(String(255))
    # Exactly one of these identifies the user, depending on how they first logged in
    aadhaar_number = Column(String(12), unique=True, index=True, nullable=True)
    external_id = Column(String(255), unique=True, index=True, nullable=True)
    created_at = Column(DateTime, default=utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "aadhaarNumber": self.aadhaar_number,
            "externalId": self.external_id,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }
