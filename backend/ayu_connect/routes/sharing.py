from flask import Blueprint, current_app, g

from ayu_connect.access_control import login_required
from ayu_connect.context import get_services
from ayu_connect.errors import ValidationError
from ayu_connect.models import Channel, TokenKind
from ayu_connect.services import AccessLogRecorder
from .helpers import json_body, origin_from_request, respond, sharing_service, token_manager

sharing_bp = Blueprint("sharing", __name__, url_prefix="/api/share")


def resolution_payload(resolution):
    token = resolution.token
    return {
        "tokenId": token.id,
        "recordIds": resolution.record_ids,
        "records": [r.to_dict(now=resolution.now) for r in resolution.records],
        "unavailableRecordIds": resolution.missing_record_ids,
        "expiresAt": token.expires_at.isoformat() if token.expires_at else None,
        "secondsRemaining": resolution.seconds_remaining,
        "status": resolution.state.value,
    }


# ==================== SHARE TOKENS ====================

@sharing_bp.route("/generate", methods=["POST"])
@login_required
def generate_token():
    """Issue a time-boxed share token over the selected records"""
    data = json_body()
    minutes = data.get("expiryMinutes", current_app.config["DEFAULT_SHARE_MINUTES"])
    with get_services().database.session_scope() as db:
        manager = token_manager(db)
        token = manager.issue_share_token(g.user_id, data.get("recordIds"), minutes, origin_from_request())
        payload = token.to_dict(manager.clock.now(), manager.warn_seconds)
        payload["recordCount"] = len(payload["recordIds"])
    return respond(data=payload, message="Access token generated successfully", status=201)


@sharing_bp.route("/access/<token>", methods=["GET"])
def access_shared_records(token):
    """Public: resolve a share token. The token itself is the credential."""
    with get_services().database.session_scope() as db:
        resolution = token_manager(db).resolve_token(
            token, origin_from_request(Channel.QR), kind=TokenKind.SHARE
        )
        payload = resolution_payload(resolution)
        payload["extension"] = resolution.token.extension_to_dict()
    return respond(data=payload, message="Access granted")


@sharing_bp.route("/access/<token>/extension", methods=["POST"])
def request_extension(token):
    """Public: the token holder asks the owner for more time"""
    data = json_body()
    with get_services().database.session_scope() as db:
        shared = token_manager(db).request_extension(token, data.get("reason"), origin_from_request(Channel.QR))
        payload = shared.extension_to_dict()
    return respond(data=payload, message="Extension request sent to the patient")


@sharing_bp.route("/revoke", methods=["POST"])
@login_required
def revoke_token():
    data = json_body()
    with get_services().database.session_scope() as db:
        manager = token_manager(db)
        if data.get("tokenId"):
            token = manager.revoke_token(g.user_id, data["tokenId"], origin_from_request())
        elif data.get("accessToken"):
            token = manager.revoke_by_token_string(g.user_id, data["accessToken"], origin_from_request())
        else:
            raise ValidationError("Please provide tokenId or accessToken")
        payload = token.to_dict(manager.clock.now(), manager.warn_seconds)
    return respond(data=payload, message="Access token revoked successfully")


@sharing_bp.route("/tokens", methods=["GET"])
@login_required
def list_tokens():
    with get_services().database.session_scope() as db:
        manager = token_manager(db)
        now = manager.clock.now()
        payload = [t.to_dict(now, manager.warn_seconds) for t in manager.list_tokens(g.user_id, TokenKind.SHARE)]
    return respond(data=payload, count=len(payload))


@sharing_bp.route("/tokens/<token_id>/extension", methods=["POST"])
@login_required
def decide_extension(token_id):
    """Owner approves or denies the pending extension request"""
    data = json_body()
    granted = data.get("granted")
    if not isinstance(granted, bool):
        raise ValidationError("granted must be true or false")
    with get_services().database.session_scope() as db:
        manager = token_manager(db)
        token = manager.decide_extension(g.user_id, token_id, granted, data.get("minutes"), origin_from_request())
        payload = token.to_dict(manager.clock.now(), manager.warn_seconds)
    message = "Extension granted" if granted else "Extension denied"
    return respond(data=payload, message=message)


@sharing_bp.route("/logs", methods=["GET"])
@login_required
def access_logs():
    services = get_services()
    with services.database.session_scope() as db:
        entries = AccessLogRecorder(db, services.clock).for_user(g.user_id)
        payload = [e.to_dict() for e in entries]
    return respond(data=payload, count=len(payload))


# ==================== USER GRANTS ====================

@sharing_bp.route("/shared-by-me", methods=["GET"])
@login_required
def shared_by_me():
    with get_services().database.session_scope() as db:
        records = sharing_service(db).shared_by_me(g.user_id)
        now = get_services().clock.now()
        payload = [r.to_dict(include_grants=True, now=now) for r in records]
    return respond(data=payload, count=len(payload))


@sharing_bp.route("/shared-with-me", methods=["GET"])
@login_required
def shared_with_me():
    with get_services().database.session_scope() as db:
        payload = []
        service = sharing_service(db)
        for record, grant in service.shared_with_me(g.user_id):
            item = record.to_dict(now=service.clock.now())
            item["accessType"] = grant.access_type.value
            item["expiresAt"] = grant.expires_at.isoformat() if grant.expires_at else None
            payload.append(item)
    return respond(data=payload, count=len(payload))


@sharing_bp.route("/<record_id>", methods=["POST"])
@login_required
def share_record(record_id):
    """Share a record with another known user"""
    data = json_body()
    with get_services().database.session_scope() as db:
        service = sharing_service(db)
        grantee = service.find_grantee(user_id=data.get("userId"), aadhaar_number=data.get("aadhaarNumber"))
        grant = service.share_with_user(
            g.user_id, record_id, grantee,
            access_type=data.get("accessType"),
            expires_at=data.get("expiresAt"),
            origin=origin_from_request(),
        )
        payload = {
            "record": record_id,
            "sharedWith": grantee.id,
            "accessType": grant.access_type.value,
            "expiresAt": grant.expires_at.isoformat() if grant.expires_at else None,
        }
    return respond(data=payload, message="Record shared successfully", status=201)


@sharing_bp.route("/<record_id>/<user_id>", methods=["DELETE"])
@login_required
def revoke_grant(record_id, user_id):
    with get_services().database.session_scope() as db:
        sharing_service(db).revoke_grant(g.user_id, record_id, user_id, origin_from_request())
    return respond(data={}, message="Access revoked")


@sharing_bp.route("/<record_id>/link", methods=["POST"])
@login_required
def generate_share_link(record_id):
    """Share link over one record; ``expiresIn`` is in hours"""
    data = json_body()
    with get_services().database.session_scope() as db:
        token = sharing_service(db).generate_share_link(
            g.user_id, record_id, data.get("expiresIn"), origin_from_request()
        )
        payload = {
            "tokenId": token.id,
            "accessToken": token.token,
            "shareLink": token.access_url,
            "expiresAt": token.expires_at.isoformat(),
        }
    return respond(data=payload, message="Share link generated")
