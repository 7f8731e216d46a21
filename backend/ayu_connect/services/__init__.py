from .access_log import AccessLogRecorder, Origin
from .identity import DigiLockerClient, DigiLockerProfile, IdentityProviderError, IdentityService
from .records import RecordStore
from .sharing import SharingService
from .storage import FileStorage
from .tokens import AccessTokenManager, TokenResolution

__all__ = [
    "AccessLogRecorder", "Origin",
    "DigiLockerClient", "DigiLockerProfile", "IdentityProviderError", "IdentityService",
    "RecordStore", "SharingService", "FileStorage",
    "AccessTokenManager", "TokenResolution",
]
