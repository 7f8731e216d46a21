import logging

from flask import Blueprint, current_app, g
from flask_jwt_extended import create_access_token

from ayu_connect.access_control import BearerCredential, login_required
from ayu_connect.context import get_services
from ayu_connect.errors import NotFound
from ayu_connect.models import User
from ayu_connect.services import AccessLogRecorder
from .helpers import identity_service, json_body, origin_from_request, respond

logger = logging.getLogger(__name__)

auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.route("/aadhaar", methods=["POST"])
def request_otp():
    """Start an Aadhaar login by issuing a one-time code"""
    data = json_body()
    with get_services().database.session_scope() as db:
        challenge, code = identity_service(db).request_otp(data.get("aadhaarNumber"))
        payload = {"expiresAt": challenge.expires_at.isoformat()}

    # The code would normally travel by SMS; development setups get it back directly
    if current_app.config["OTP_EXPOSE_CODE"]:
        payload["devOtp"] = code
    return respond(data=payload, message="OTP sent successfully")


@auth_bp.route("/verify-otp", methods=["POST"])
def verify_otp():
    data = json_body()
    with get_services().database.session_scope() as db:
        user = identity_service(db).verify_otp(
            data.get("aadhaarNumber"),
            data.get("otp"),
            origin=origin_from_request(),
            name=data.get("name"),
        )
        token = create_access_token(identity=str(user.id))
        payload = {"token": token, "user": user.to_dict()}

    logger.info("[AUTH] Login successful for user %s", payload["user"]["id"])
    return respond(data=payload, message="Authentication successful")


@auth_bp.route("/user", methods=["GET"])
@login_required
def current_user():
    """Get current user info"""
    with get_services().database.session_scope() as db:
        user = db.get(User, g.user_id)
        if user is None:
            raise NotFound("User not found")
        payload = user.to_dict()
        payload["authMethod"] = "bearer" if isinstance(g.credential, BearerCredential) else "session"
    return respond(data=payload)


@auth_bp.route("/profile", methods=["PUT"])
@login_required
def update_profile():
    data = json_body()
    with get_services().database.session_scope() as db:
        user = identity_service(db).update_profile(g.user_id, data)
        payload = user.to_dict()
    return respond(data=payload, message="Profile updated")


@auth_bp.route("/logins", methods=["GET"])
@login_required
def login_history():
    services = get_services()
    with services.database.session_scope() as db:
        entries = AccessLogRecorder(db, services.clock).logins(g.user_id)
        payload = [e.to_dict() for e in entries]
    return respond(data=payload, count=len(payload))
