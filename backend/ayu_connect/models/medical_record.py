import enum
from uuid import uuid4

from sqlalchemy import Column, String, Boolean, DateTime, Date, Enum, Text, Integer, ForeignKey
from sqlalchemy.orm import relationship

from ayu_connect.clock import utcnow
from ayu_connect.database import Base
from ayu_connect.lifecycle import evaluate, is_usable


class RecordType(enum.Enum):
    LAB_REPORT = "Lab Report"
    PRESCRIPTION = "Prescription"
    IMAGING = "Imaging"
    DISCHARGE_SUMMARY = "Discharge Summary"
    VACCINATION = "Vaccination"
    CONSULTATION = "Consultation"
    OTHER = "Other"

    @classmethod
    def parse(cls, value):
        """Accept either the display value ("Lab Report") or the name ("lab_report")."""
        if isinstance(value, cls):
            return value
        text = str(value or "").strip()
        for member in cls:
            if text.lower() in (member.value.lower(), member.name.lower(), member.name.lower().replace("_", "-")):
                return member
        raise ValueError(f"Unknown record type: {value}")


class AccessType(enum.Enum):
    VIEW = "view"
    DOWNLOAD = "download"


class MedicalRecord(Base):
    __tablename__ = "medical_records"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid4()))
    user_id = Column(String(36), index=True, nullable=False)
    type = Column(Enum(RecordType), nullable=False, default=RecordType.OTHER)
    title = Column(String(255), nullable=False)
    date = Column(Date)
    hospital = Column(String(255))
    doctor = Column(String(255))
    description = Column(Text)
    is_emergency_accessible = Column(Boolean, default=False, nullable=False)
    is_shared = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    files = relationship(
        "RecordFile", back_populates="record", cascade="all, delete-orphan", order_by="RecordFile.uploaded_at"
    )
    shared_with = relationship(
        "SharedGrant", back_populates="record", cascade="all, delete-orphan", order_by="SharedGrant.granted_at"
    )

    def usable_grants(self, now):
        return [g for g in self.shared_with if is_usable(g.state(now))]

    def to_dict(self, include_grants=False, now=None):
        # Grants lapse without a write, so sharing state is derived at read time
        now = now or utcnow()
        grants = self.usable_grants(now)
        data = {
            "id": self.id,
            "user": self.user_id,
            "type": self.type.value if self.type else None,
            "title": self.title,
            "date": self.date.isoformat() if self.date else None,
            "hospital": self.hospital,
            "doctor": self.doctor,
            "description": self.description,
            "isEmergencyAccessible": self.is_emergency_accessible,
            "isShared": bool(grants),
            "files": [f.to_dict() for f in self.files],
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }
        if include_grants:
            data["sharedWith"] = [g.to_dict(now) for g in grants]
        return data


class RecordFile(Base):
    __tablename__ = "record_files"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid4()))
    record_id = Column(String(36), ForeignKey("medical_records.id", ondelete="CASCADE"), index=True)
    user_id = Column(String(36), nullable=False)
    filename = Column(String(255), nullable=False)  # name on disk
    original_name = Column(String(255), nullable=False)
    content_type = Column(String(255), nullable=False)
    size = Column(Integer, nullable=False)
    uploaded_at = Column(DateTime, default=utcnow)

    record = relationship("MedicalRecord", back_populates="files")

    def to_dict(self):
        return {
            "fileId": self.id,
            "filename": self.filename,
            "originalName": self.original_name,
            "fileType": self.content_type,
            "fileSize": self.size,
            "uploadDate": self.uploaded_at.isoformat() if self.uploaded_at else None,
        }


class SharedGrant(Base):
    __tablename__ = "shared_grants"

    id = Column(Integer, primary_key=True, autoincrement=True)
    record_id = Column(String(36), ForeignKey("medical_records.id", ondelete="CASCADE"), index=True)
    grantee_id = Column(String(36), index=True, nullable=False)
    access_type = Column(Enum(AccessType), nullable=False, default=AccessType.VIEW)
    expires_at = Column(DateTime, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    granted_at = Column(DateTime, default=utcnow)
    revoked_at = Column(DateTime, nullable=True)

    record = relationship("MedicalRecord", back_populates="shared_with")

    def state(self, now):
        return evaluate(self.is_active, self.expires_at, now)

    def to_dict(self, now=None):
        state = self.state(now or utcnow())
        return {
            "id": self.id,
            "user": self.grantee_id,
            "accessType": self.access_type.value,
            "expiresAt": self.expires_at.isoformat() if self.expires_at else None,
            "status": state.value,
            "isActive": is_usable(state),
            "grantedAt": self.granted_at.isoformat() if self.granted_at else None,
        }
