from flask import Blueprint, request

from ayu_connect.context import get_services
from .helpers import identity_service, origin_from_request, respond

digilocker_bp = Blueprint("digilocker", __name__, url_prefix="/api/digilocker")


@digilocker_bp.route("/session", methods=["GET"])
def start_session():
    """Create a pending session and hand back the provider's consent URL"""
    with get_services().database.session_scope() as db:
        session, url = identity_service(db).start_session()
        payload = {
            "sessionId": session.session_id,
            "authorizationUrl": url,
            "expiresAt": session.expires_at.isoformat(),
        }
    return respond(data=payload, status=201)


@digilocker_bp.route("/callback", methods=["GET"])
def callback():
    """Provider redirect target: ``state`` carries our session id"""
    with get_services().database.session_scope() as db:
        session, user = identity_service(db).complete_session(
            request.args.get("state"),
            request.args.get("code"),
            origin=origin_from_request(),
            error=request.args.get("error"),
        )
        payload = {"sessionId": session.session_id, "user": user.to_dict()}
    return respond(data=payload, message="DigiLocker authentication successful")


@digilocker_bp.route("/status/<session_id>", methods=["GET"])
def session_status(session_id):
    with get_services().database.session_scope() as db:
        payload = identity_service(db).session_status(session_id).to_dict()
    return respond(data=payload)
