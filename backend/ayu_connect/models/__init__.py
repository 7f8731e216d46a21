# Import Base from database config (shared instance)
from ayu_connect.database import Base

# Import all models here to register them with Base
from .user import User
from .medical_record import MedicalRecord, RecordFile, SharedGrant, RecordType, AccessType
from .access_token import AccessToken, TokenAccessEvent, TokenKind, ExtensionStatus
from .access_log import AccessLog, LogAction, Channel
from .auth_session import OtpChallenge, DigiLockerSession, SessionState

__all__ = [
    'Base', 'User', 'MedicalRecord', 'RecordFile', 'SharedGrant', 'RecordType', 'AccessType',
    'AccessToken', 'TokenAccessEvent', 'TokenKind', 'ExtensionStatus',
    'AccessLog', 'LogAction', 'Channel',
    'OtpChallenge', 'DigiLockerSession', 'SessionState',
]
