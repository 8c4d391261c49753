# adrms/routes/records_routes.py
from datetime import datetime
from io import BytesIO

from flask import Blueprint, current_app, jsonify, request, send_file
from flask_jwt_extended import jwt_required

from adrms.services.auth_utils import MissingOrganizationError, get_request_identity
from adrms.services.export_service import build_workbook, export_records
from adrms.services.record_service import (
    DuplicateRecordError,
    RecordValidationError,
    create_record,
    delete_records,
    get_record,
    list_records,
    update_record,
)
from adrms.services.row_mapper import KIND_FINANCIAL, KIND_MEMBERSHIP

records_bp = Blueprint("records", __name__, url_prefix="/api/records")

_KIND_SLUGS = {
    "financial": KIND_FINANCIAL,
    "membership": KIND_MEMBERSHIP,
}

XLSX_MIMETYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


# ───────────────────────── Helpers ─────────────────────────
def _kind_or_404(slug):
    return _KIND_SLUGS.get((slug or "").lower())


def _int_arg(name, default):
    try:
        return int(request.args.get(name, default))
    except (TypeError, ValueError):
        return default


def _filters(identity):
    """Query-string filters shared by listing and export."""
    org_id = _int_arg("org_id", 0) if identity.is_super_admin else 0
    return {
        "search": (request.args.get("q") or "").strip() or None,
        "month": (request.args.get("month") or "").strip() or None,
        "year": (request.args.get("year") or "").strip() or None,
        "majlis": (request.args.get("majlis") or "").strip() or None,
        "org_id": org_id or None,
    }


# ───────────────────────── Listing ─────────────────────────
@records_bp.get("/<kind_slug>")
@jwt_required()
def list_view(kind_slug):
    kind = _kind_or_404(kind_slug)
    if kind is None:
        return jsonify(error="Unknown record kind"), 404

    identity = get_request_identity()
    try:
        payload = list_records(
            kind,
            identity,
            page=_int_arg("page", 1),
            limit=_int_arg("limit", current_app.config.get("RECORDS_PAGE_SIZE", 20)),
            **_filters(identity),
        )
    except MissingOrganizationError as e:
        return jsonify(error=str(e)), 403
    return jsonify(payload), 200


@records_bp.get("/<kind_slug>/<int:record_id>")
@jwt_required()
def detail_view(kind_slug, record_id):
    kind = _kind_or_404(kind_slug)
    if kind is None:
        return jsonify(error="Unknown record kind"), 404
    try:
        rec = get_record(kind, get_request_identity(), record_id)
    except MissingOrganizationError as e:
        return jsonify(error=str(e)), 403
    if rec is None:
        return jsonify(error="Record not found"), 404
    return jsonify(rec.to_dict()), 200


# ───────────────────────── Writes ─────────────────────────
@records_bp.post("/<kind_slug>")
@jwt_required()
def create_view(kind_slug):
    kind = _kind_or_404(kind_slug)
    if kind is None:
        return jsonify(error="Unknown record kind"), 404

    data = request.get_json(silent=True) or {}
    try:
        rec = create_record(kind, get_request_identity(), data)
    except MissingOrganizationError as e:
        return jsonify(error=str(e)), 403
    except RecordValidationError as e:
        return jsonify(error=str(e)), 400
    except DuplicateRecordError as e:
        return jsonify(error=str(e)), 409

    current_app.logger.info("Created %s record %s", kind, rec.id)
    return jsonify(rec.to_dict()), 201


@records_bp.patch("/<kind_slug>/<int:record_id>")
@jwt_required()
def update_view(kind_slug, record_id):
    kind = _kind_or_404(kind_slug)
    if kind is None:
        return jsonify(error="Unknown record kind"), 404

    data = request.get_json(silent=True) or {}
    try:
        rec = update_record(kind, get_request_identity(), record_id, data)
    except MissingOrganizationError as e:
        return jsonify(error=str(e)), 403
    except RecordValidationError as e:
        return jsonify(error=str(e)), 400
    except DuplicateRecordError as e:
        return jsonify(error=str(e)), 409

    if rec is None:
        return jsonify(error="Record not found"), 404
    return jsonify(rec.to_dict()), 200


@records_bp.delete("/<kind_slug>")
@jwt_required()
def delete_view(kind_slug):
    kind = _kind_or_404(kind_slug)
    if kind is None:
        return jsonify(error="Unknown record kind"), 404

    data = request.get_json(silent=True) or {}
    ids = data.get("ids")
    if not isinstance(ids, list) or not ids:
        return jsonify(error="ids must be a non-empty list"), 400

    identity = get_request_identity()
    try:
        identity.require_organization()
        deleted = delete_records(kind, identity, ids)
    except MissingOrganizationError as e:
        return jsonify(error=str(e)), 403

    current_app.logger.info("Deleted %d %s records for org %s", deleted, kind, identity.organization_id)
    return jsonify(deleted=deleted), 200


# ───────────────────────── Export ─────────────────────────
@records_bp.get("/<kind_slug>/export")
@jwt_required()
def export_view(kind_slug):
    kind = _kind_or_404(kind_slug)
    if kind is None:
        return jsonify(error="Unknown record kind"), 404

    identity = get_request_identity()
    columns = [c.strip() for c in (request.args.get("columns") or "").split(",") if c.strip()]
    try:
        table = export_records(kind, identity, columns=columns or None, **_filters(identity))
    except MissingOrganizationError as e:
        return jsonify(error=str(e)), 403
    except ValueError as e:
        return jsonify(error=str(e)), 400

    stamp = datetime.utcnow().strftime("%Y%m%d")
    return send_file(
        BytesIO(build_workbook(table)),
        mimetype=XLSX_MIMETYPE,
        as_attachment=True,
        download_name=f"{kind_slug.lower()}_records_{stamp}.xlsx",
    )
