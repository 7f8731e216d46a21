from flask import Blueprint, g

from ayu_connect.access_control import login_required
from ayu_connect.context import get_services
from ayu_connect.models import Channel, TokenKind, User
from .helpers import json_body, origin_from_request, respond, token_manager
from .sharing import resolution_payload

emergency_bp = Blueprint("emergency", __name__, url_prefix="/api/emergency")


@emergency_bp.route("/token", methods=["POST"])
@login_required
def generate_emergency_token():
    data = json_body()
    info = data.get("additionalInfo", data.get("emergencyInfo"))
    with get_services().database.session_scope() as db:
        manager = token_manager(db)
        token = manager.issue_emergency_token(
            g.user_id, data.get("recordIds"), data.get("emergencyContact"), info, origin_from_request()
        )
        payload = token.to_dict(manager.clock.now())
        payload["token"] = token.token
        payload["recordCount"] = len(payload["recordIds"])
    return respond(data=payload, message="Emergency token generated successfully", status=201)


@emergency_bp.route("/tokens", methods=["GET"])
@login_required
def list_emergency_tokens():
    with get_services().database.session_scope() as db:
        manager = token_manager(db)
        now = manager.clock.now()
        payload = [t.to_dict(now) for t in manager.list_tokens(g.user_id, TokenKind.EMERGENCY)]
    return respond(data=payload, count=len(payload))


@emergency_bp.route("/token/<token_id>", methods=["DELETE"])
@login_required
def revoke_emergency_token(token_id):
    with get_services().database.session_scope() as db:
        manager = token_manager(db)
        token = manager.revoke_token(g.user_id, token_id, origin_from_request(), kind=TokenKind.EMERGENCY)
        payload = token.to_dict(manager.clock.now())
    return respond(data=payload, message="Emergency access revoked")


@emergency_bp.route("/access/<token>", methods=["GET"])
def access_emergency_records(token):
    """Public: first responders open this straight from the QR code"""
    with get_services().database.session_scope() as db:
        resolution = token_manager(db).resolve_token(
            token, origin_from_request(Channel.EMERGENCY), kind=TokenKind.EMERGENCY
        )
        payload = resolution_payload(resolution)
        owner = db.get(User, resolution.token.user_id)
        payload["user"] = {"id": owner.id, "name": owner.name} if owner else None
        payload["emergencyContact"] = resolution.token.emergency_contact
        payload["additionalInfo"] = resolution.token.additional_info
    return respond(data=payload, message="Emergency access granted")


@emergency_bp.route("/logs", methods=["GET"])
@login_required
def emergency_access_logs():
    with get_services().database.session_scope() as db:
        rows = token_manager(db).list_access_events(g.user_id, TokenKind.EMERGENCY)
        payload = []
        for event, token in rows:
            item = event.to_dict()
            item["recordCount"] = len(token.record_ids or [])
            payload.append(item)
    return respond(data=payload, count=len(payload))
