"""Identity provider adapter: Aadhaar + OTP, and DigiLocker session handoff."""
import logging
import re
import secrets
from dataclasses import dataclass
from datetime import timedelta
from urllib.parse import urlencode

import requests
from werkzeug.security import check_password_hash, generate_password_hash

from ayu_connect.errors import AuthenticationError, DomainError, NotFound, ValidationError
from ayu_connect.models import DigiLockerSession, LogAction, OtpChallenge, SessionState, User
from .access_log import AccessLogRecorder

logger = logging.getLogger(__name__)

AADHAAR_PATTERN = re.compile(r"^\d{12}$")
OTP_PATTERN = re.compile(r"^\d{6}$")


def normalize_aadhaar(value):
    number = re.sub(r"[\s-]", "", str(value or ""))
    if not AADHAAR_PATTERN.match(number):
        raise ValidationError("Please provide a valid 12-digit Aadhaar number")
    return number


class IdentityProviderError(DomainError):
    status_code = 502
    default_message = "Identity provider unavailable"


@dataclass(frozen=True)
class DigiLockerProfile:
    subject: str
    name: str = None


class DigiLockerClient:
    """Thin HTTP client for the DigiLocker authorization-code exchange."""

    def __init__(self, client_id, client_secret, redirect_uri, authorize_url, token_url, profile_url, timeout=10):
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self.authorize_url = authorize_url
        self.token_url = token_url
        self.profile_url = profile_url
        self.timeout = timeout

    @classmethod
    def from_config(cls, config):
        """Build a client from app config, or ``None`` when no credentials are set."""
        if not config.get("DIGILOCKER_CLIENT_ID") or not config.get("DIGILOCKER_CLIENT_SECRET"):
            logger.warning("[AUTH] DigiLocker credentials missing, DigiLocker login is disabled")
            return None
        return cls(
            client_id=config["DIGILOCKER_CLIENT_ID"],
            client_secret=config["DIGILOCKER_CLIENT_SECRET"],
            redirect_uri=config["DIGILOCKER_REDIRECT_URI"],
            authorize_url=config["DIGILOCKER_AUTHORIZE_URL"],
            token_url=config["DIGILOCKER_TOKEN_URL"],
            profile_url=config["DIGILOCKER_PROFILE_URL"],
        )

    def authorization_url(self, state):
        params = {
            "response_type": "code",
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "state": state,
        }
        return f"{self.authorize_url}?{urlencode(params)}"

    def fetch_profile(self, code):
        try:
            response = requests.post(
                self.token_url,
                data={
                    "grant_type": "authorization_code",
                    "code": code,
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                    "redirect_uri": self.redirect_uri,
                },
                timeout=self.timeout,
            )
            response.raise_for_status()
            access_token = response.json()["access_token"]

            response = requests.get(
                self.profile_url,
                headers={"Authorization": f"Bearer {access_token}"},
                timeout=self.timeout,
            )
            response.raise_for_status()
            data = response.json()
        except (requests.RequestException, KeyError, ValueError) as e:
            raise IdentityProviderError(str(e)) from e

        subject = data.get("digilockerid") or data.get("sub")
        if not subject:
            raise IdentityProviderError("Profile response did not include a subject id")
        return DigiLockerProfile(subject=str(subject), name=data.get("name"))


class IdentityService:
    def __init__(self, db, clock, otp_ttl_minutes=5, otp_max_attempts=5, session_hours=8, digilocker=None):
        self.db = db
        self.clock = clock
        self.otp_ttl = timedelta(minutes=otp_ttl_minutes)
        self.otp_max_attempts = otp_max_attempts
        self.session_ttl = timedelta(hours=session_hours)
        self.digilocker = digilocker
        self.log = AccessLogRecorder(db, clock)

    # ------------------------------------------------------------------
    # Aadhaar + OTP

    def request_otp(self, aadhaar_number):
        """Open a fresh challenge; returns ``(challenge, code)``. Only the hash is stored."""
        number = normalize_aadhaar(aadhaar_number)
        now = self.clock.now()

        # A new request supersedes any challenge still open for this number
        open_challenges = (
            self.db.query(OtpChallenge)
            .filter(OtpChallenge.aadhaar_number == number, OtpChallenge.consumed_at.is_(None))
            .all()
        )
        for challenge in open_challenges:
            challenge.consumed_at = now

        code = f"{secrets.randbelow(10 ** 6):06d}"
        challenge = OtpChallenge(
            aadhaar_number=number,
            code_hash=generate_password_hash(code),
            created_at=now,
            expires_at=now + self.otp_ttl,
            attempts=0,
        )
        self.db.add(challenge)
        self.db.flush()
        logger.info("[AUTH] OTP issued for Aadhaar ending %s", number[-4:])
        return challenge, code

    def verify_otp(self, aadhaar_number, otp, origin=None, name=None):
        number = normalize_aadhaar(aadhaar_number)
        otp = str(otp or "").strip()
        if not OTP_PATTERN.match(otp):
            raise ValidationError("Please provide the 6-digit OTP")

        now = self.clock.now()
        challenge = (
            self.db.query(OtpChallenge)
            .filter(OtpChallenge.aadhaar_number == number, OtpChallenge.consumed_at.is_(None))
            .order_by(OtpChallenge.created_at.desc(), OtpChallenge.id.desc())
            .first()
        )
        if challenge is None:
            raise AuthenticationError("No pending OTP for this Aadhaar number, please request a new one")
        if now >= challenge.expires_at:
            raise AuthenticationError("OTP has expired, please request a new one")
        if challenge.attempts >= self.otp_max_attempts:
            raise AuthenticationError("Too many incorrect attempts, please request a new OTP")
        if not check_password_hash(challenge.code_hash, otp):
            challenge.attempts += 1
            # The failed attempt must survive the rollback of this request
            self.db.commit()
            logger.warning("[AUTH] Wrong OTP for Aadhaar ending %s", number[-4:])
            raise AuthenticationError("Invalid OTP")

        challenge.consumed_at = now
        user = self.db.query(User).filter(User.aadhaar_number == number).first()
        if user is None:
            user = User(aadhaar_number=number, name=(name or "").strip() or "Patient", created_at=now)
            self.db.add(user)
            self.db.flush()
            logger.info("[AUTH] New user %s created from Aadhaar login", user.id)

        self.log.record(
            user.id, LogAction.LOGIN, origin, actor_id=user.id, timestamp=now,
            details=f"Logged in with Aadhaar ending {number[-4:]}",
        )
        return user

    # ------------------------------------------------------------------
    # DigiLocker

    def start_session(self):
        if self.digilocker is None:
            raise IdentityProviderError("DigiLocker is not configured")
        now = self.clock.now()
        session = DigiLockerSession(
            session_id=secrets.token_urlsafe(24),
            state=SessionState.PENDING,
            created_at=now,
            expires_at=now + self.session_ttl,
        )
        self.db.add(session)
        self.db.flush()
        return session, self.digilocker.authorization_url(session.session_id)

    def complete_session(self, session_id, code, origin=None, error=None):
        if self.digilocker is None:
            raise IdentityProviderError("DigiLocker is not configured")
        session = self.db.get(DigiLockerSession, session_id) if session_id else None
        if session is None:
            raise NotFound("Unknown DigiLocker session")
        if session.state != SessionState.PENDING:
            raise ValidationError("DigiLocker session has already been completed")

        now = self.clock.now()
        if now >= session.expires_at:
            raise AuthenticationError("DigiLocker session has expired")

        if error or not code:
            self._fail(session, error or "missing authorization code")
        try:
            profile = self.digilocker.fetch_profile(code)
        except IdentityProviderError as e:
            self._fail(session, str(e))

        user = self.db.query(User).filter(User.external_id == profile.subject).first()
        if user is None:
            user = User(external_id=profile.subject, name=profile.name or "DigiLocker User", created_at=now)
            self.db.add(user)
            self.db.flush()
            logger.info("[AUTH] New user %s created from DigiLocker login", user.id)

        session.user_id = user.id
        session.state = SessionState.AUTHENTICATED
        session.expires_at = now + self.session_ttl
        self.log.record(user.id, LogAction.LOGIN, origin, actor_id=user.id, timestamp=now,
                        details="Logged in with DigiLocker")
        return session, user

    def _fail(self, session, reason):
        session.state = SessionState.FAILED
        self.db.commit()
        logger.warning("[AUTH] DigiLocker session %s failed: %s", session.session_id, reason)
        raise AuthenticationError("DigiLocker authentication failed")

    def session_status(self, session_id):
        session = self.db.get(DigiLockerSession, session_id) if session_id else None
        if session is None:
            raise NotFound("Unknown DigiLocker session")
        return session

    # ------------------------------------------------------------------
    # profile

    def update_profile(self, user_id, data):
        if not isinstance(data, dict):
            raise ValidationError("Request body must be a JSON object")
        user = self.db.get(User, user_id)
        if user is None:
            raise NotFound("User not found")
        name = str(data.get("name") or "").strip()
        if not name:
            raise ValidationError("name is required")
        if len(name) > 255:
            raise ValidationError("name is too long")
        user.name = name
        return user
