from flask import Blueprint, Response, g, request

from ayu_connect.access_control import login_required
from ayu_connect.context import get_services
from .helpers import json_body, origin_from_request, record_store, respond

records_bp = Blueprint("records", __name__, url_prefix="/api/records")


@records_bp.route("", methods=["GET"])
@login_required
def list_records():
    """Get all records for the logged-in user, optionally filtered by ``?type=``"""
    services = get_services()
    with services.database.session_scope() as db:
        records = record_store(db).list_records(g.user_id, request.args.get("type"), origin_from_request())
        now = services.clock.now()
        payload = [r.to_dict(now=now) for r in records]
    return respond(data=payload, count=len(payload))


@records_bp.route("/category/<category>", methods=["GET"])
@login_required
def list_by_category(category):
    services = get_services()
    with services.database.session_scope() as db:
        records = record_store(db).list_records(g.user_id, category, origin_from_request())
        now = services.clock.now()
        payload = [r.to_dict(now=now) for r in records]
    return respond(data=payload, count=len(payload))


@records_bp.route("", methods=["POST"])
@login_required
def create_record():
    data = json_body()
    with get_services().database.session_scope() as db:
        record = record_store(db).create_record(g.user_id, data, origin_from_request())
        payload = record.to_dict(include_grants=True, now=get_services().clock.now())
    return respond(data=payload, message="Record created successfully", status=201)


@records_bp.route("/<record_id>", methods=["GET"])
@login_required
def get_record(record_id):
    with get_services().database.session_scope() as db:
        record = record_store(db).get_record(g.user_id, record_id, origin_from_request())
        # Only the owner sees who else the record is shared with
        payload = record.to_dict(include_grants=record.user_id == g.user_id, now=get_services().clock.now())
    return respond(data=payload)


@records_bp.route("/<record_id>", methods=["PUT"])
@login_required
def update_record(record_id):
    data = json_body()
    with get_services().database.session_scope() as db:
        record = record_store(db).update_record(g.user_id, record_id, data, origin_from_request())
        payload = record.to_dict(include_grants=True, now=get_services().clock.now())
    return respond(data=payload, message="Record updated successfully")


@records_bp.route("/<record_id>", methods=["DELETE"])
@login_required
def delete_record(record_id):
    with get_services().database.session_scope() as db:
        record_store(db).delete_record(g.user_id, record_id, origin_from_request())
    return respond(data={}, message="Record deleted successfully")


@records_bp.route("/<record_id>/files", methods=["POST"])
@login_required
def upload_file(record_id):
    with get_services().database.session_scope() as db:
        rf = record_store(db).attach_file(g.user_id, record_id, request.files.get("file"), origin_from_request())
        payload = rf.to_dict()
    return respond(data=payload, message="File uploaded successfully", status=201)


@records_bp.route("/<record_id>/files/<file_id>", methods=["GET"])
@login_required
def download_file(record_id, file_id):
    with get_services().database.session_scope() as db:
        rf, data = record_store(db).get_file(g.user_id, record_id, file_id, origin_from_request())
        content_type, original_name, size = rf.content_type, rf.original_name, rf.size

    return Response(
        data,
        mimetype=content_type,
        headers={
            "Content-Disposition": f'attachment; filename="{original_name}"',
            "Content-Length": str(size),
        },
    )


@records_bp.route("/<record_id>/files/<file_id>", methods=["DELETE"])
@login_required
def delete_file(record_id, file_id):
    with get_services().database.session_scope() as db:
        record_store(db).delete_file(g.user_id, record_id, file_id, origin_from_request())
    return respond(data={}, message="File deleted successfully")
