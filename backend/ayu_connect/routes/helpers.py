from flask import current_app, jsonify, request

from ayu_connect.context import get_services
from ayu_connect.errors import ValidationError
from ayu_connect.models import Channel
from ayu_connect.services import (
    AccessTokenManager, IdentityService, Origin, RecordStore, SharingService,
)


def respond(data=None, message=None, status=200, count=None):
    """Uniform success envelope."""
    body = {"success": True}
    if message:
        body["message"] = message
    if data is not None:
        body["data"] = data
    if count is not None:
        body["count"] = count
    return jsonify(body), status


def json_body():
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def origin_from_request(channel=Channel.WEB):
    return Origin(
        ip_address=request.remote_addr,
        user_agent=request.headers.get("User-Agent"),
        channel=channel,
    )


def token_manager(db):
    cfg = current_app.config
    return AccessTokenManager(
        db,
        get_services().clock,
        frontend_url=cfg["FRONTEND_URL"],
        warn_seconds=cfg["EXPIRING_SOON_SECONDS"],
        max_minutes=cfg["MAX_SHARE_MINUTES"],
        default_extension_minutes=cfg["DEFAULT_EXTENSION_MINUTES"],
    )


def record_store(db):
    services = get_services()
    return RecordStore(db, services.clock, services.storage)


def sharing_service(db):
    return SharingService(db, get_services().clock, token_manager(db))


def identity_service(db):
    cfg = current_app.config
    services = get_services()
    return IdentityService(
        db,
        services.clock,
        otp_ttl_minutes=cfg["OTP_TTL_MINUTES"],
        otp_max_attempts=cfg["OTP_MAX_ATTEMPTS"],
        session_hours=cfg["DIGILOCKER_SESSION_HOURS"],
        digilocker=services.digilocker,
    )
