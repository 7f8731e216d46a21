"""Credential resolution for the two login flows.

Aadhaar/OTP logins carry a JWT bearer token; DigiLocker logins carry an
``x-session-id`` header. Downstream code only sees the resolved credential,
checked bearer first, then session.
"""
from dataclasses import dataclass

from flask import request
from flask_jwt_extended import get_jwt_identity, verify_jwt_in_request

from ayu_connect.errors import AuthenticationError
from ayu_connect.models import DigiLockerSession, SessionState

SESSION_HEADER = "x-session-id"


@dataclass(frozen=True)
class BearerCredential:
    user_id: str


@dataclass(frozen=True)
class SessionCredential:
    user_id: str
    session_id: str


def resolve_credential(db, now):
    # An Authorization header that is present but invalid fails here
    # through the JWT error loaders rather than falling through to the session.
    verify_jwt_in_request(optional=True)
    identity = get_jwt_identity()
    if identity:
        return BearerCredential(user_id=str(identity))

    session_id = request.headers.get(SESSION_HEADER)
    if session_id:
        session = db.get(DigiLockerSession, session_id)
        if session is None or session.state != SessionState.AUTHENTICATED or session.expires_at <= now:
            raise AuthenticationError("Invalid or expired session")
        return SessionCredential(user_id=session.user_id, session_id=session.session_id)

    raise AuthenticationError("Not authorized to access this route")
