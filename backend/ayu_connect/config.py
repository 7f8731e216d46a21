import os
from datetime import timedelta

from dotenv import load_dotenv

load_dotenv()


def _env_bool(name, default="false"):
    return os.environ.get(name, default).lower() in ("1", "true", "yes")


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "ayu-connect-dev-secret")
    JWT_SECRET_KEY = os.environ.get("JWT_SECRET_KEY", "super-secret-key-change-in-production")
    JWT_ACCESS_TOKEN_EXPIRES = timedelta(hours=int(os.environ.get("JWT_ACCESS_TOKEN_EXPIRES", "24")))

    DATABASE_URL = os.environ.get("DATABASE_URL", "sqlite:///ayu_connect.db")

    # Base URL of the single-page frontend; share and emergency links point here
    FRONTEND_URL = os.environ.get("FRONTEND_URL", "http://localhost:3000")

    UPLOAD_FOLDER = os.environ.get(
        "UPLOAD_FOLDER",
        os.path.join(os.path.dirname(os.path.abspath(__file__)), "..", "uploads"),
    )
    MAX_CONTENT_LENGTH = int(os.environ.get("MAX_FILE_SIZE", str(10 * 1024 * 1024)))

    OTP_TTL_MINUTES = int(os.environ.get("OTP_TTL_MINUTES", "5"))
    OTP_MAX_ATTEMPTS = int(os.environ.get("OTP_MAX_ATTEMPTS", "5"))
    OTP_EXPOSE_CODE = _env_bool("OTP_EXPOSE_CODE")

    DEFAULT_SHARE_MINUTES = int(os.environ.get("DEFAULT_SHARE_MINUTES", "10"))
    MAX_SHARE_MINUTES = int(os.environ.get("MAX_SHARE_MINUTES", str(7 * 24 * 60)))
    EXPIRING_SOON_SECONDS = int(os.environ.get("EXPIRING_SOON_SECONDS", "120"))
    DEFAULT_EXTENSION_MINUTES = int(os.environ.get("DEFAULT_EXTENSION_MINUTES", "15"))

    DIGILOCKER_CLIENT_ID = os.environ.get("DIGILOCKER_CLIENT_ID", "")
    DIGILOCKER_CLIENT_SECRET = os.environ.get("DIGILOCKER_CLIENT_SECRET", "")
    DIGILOCKER_REDIRECT_URI = os.environ.get(
        "DIGILOCKER_REDIRECT_URI", "http://localhost:8080/api/digilocker/callback"
    )
    DIGILOCKER_AUTHORIZE_URL = os.environ.get(
        "DIGILOCKER_AUTHORIZE_URL", "https://api.digitallocker.gov.in/public/oauth2/1/authorize"
    )
    DIGILOCKER_TOKEN_URL = os.environ.get(
        "DIGILOCKER_TOKEN_URL", "https://api.digitallocker.gov.in/public/oauth2/1/token"
    )
    DIGILOCKER_PROFILE_URL = os.environ.get(
        "DIGILOCKER_PROFILE_URL", "https://api.digitallocker.gov.in/public/oauth2/1/user"
    )
    DIGILOCKER_SESSION_HOURS = int(os.environ.get("DIGILOCKER_SESSION_HOURS", "8"))

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")


class TestConfig(Config):
    TESTING = True
    DATABASE_URL = "sqlite://"
    JWT_SECRET_KEY = "test-jwt-secret-key-with-enough-length"
    OTP_EXPOSE_CODE = True
    LOG_LEVEL = "WARNING"
