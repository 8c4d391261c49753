# adrms/routes/import_routes.py
import json
import os

from flask import Blueprint, current_app, jsonify, request
from flask_jwt_extended import jwt_required
from werkzeug.utils import secure_filename

from adrms.services.auth_utils import MissingOrganizationError, get_request_identity
from adrms.services.import_service import import_sheets
from adrms.services.row_mapper import normalize_kind
from adrms.services.sheet_parser import SUPPORTED_EXTENSIONS, SpreadsheetError, find_sheet, parse_spreadsheet

import_bp = Blueprint("import", __name__, url_prefix="/api/import")


def _read_upload():
    """(filename, bytes) of the uploaded file, or (None, error response)."""
    f = request.files.get("file")
    if not f:
        return None, (jsonify(error="No file uploaded"), 400)

    filename = secure_filename(f.filename or "")
    if not filename:
        return None, (jsonify(error="Invalid filename"), 400)

    ext = os.path.splitext(filename)[1].lower()
    if ext not in SUPPORTED_EXTENSIONS:
        return None, (jsonify(error=f"Unsupported type: {ext or '(none)'}"), 400)

    return (filename, f.read()), None


def _parse(filename, data):
    cfg = current_app.config
    return parse_spreadsheet(
        data,
        filename=filename,
        scan_rows=cfg.get("HEADER_SCAN_ROWS", 10),
        min_cells=cfg.get("HEADER_MIN_CELLS", 5),
    )


def _selected_sheet_names(sheets):
    """
    Sheet names chosen by the client.

    Repeated ``sheets`` fields are taken as exact names. A single field may
    be a JSON list, an exact sheet name (commas allowed) or a comma-separated
    list of names.
    """
    values = [v for v in request.form.getlist("sheets") if v.strip()]
    if len(values) != 1:
        return values

    value = values[0].strip()
    if value.startswith("["):
        try:
            parsed = json.loads(value)
        except ValueError:
            parsed = None
        if isinstance(parsed, list):
            return [str(n) for n in parsed if str(n).strip()]

    if find_sheet(sheets, value) is not None:
        return [value]
    return [p.strip() for p in value.split(",") if p.strip()]


# ---------------------- ROUTE: preview sheets ----------------------
@import_bp.post("/sheets")
@jwt_required()
def preview_sheets():
    """
    Form-data:
      - file: .xlsx / .xlsm / .csv
    Returns every sheet with its detected header and first five rows.
    """
    upload, err = _read_upload()
    if err:
        return err
    filename, data = upload

    try:
        sheets = _parse(filename, data)
    except SpreadsheetError as e:
        return jsonify(error=str(e)), 400

    return jsonify(filename=filename, sheets=[s.preview() for s in sheets]), 200


# ---------------------- ROUTE: import ----------------------
@import_bp.post("")
@jwt_required()
def import_upload():
    """
    Form-data:
      - file: .xlsx / .xlsm / .csv
      - kind: FINANCIAL | MEMBERSHIP
      - sheets: repeated exact names, a JSON list, or one comma-separated field (empty = all)
    """
    identity = get_request_identity()
    if not identity.organization_id:
        return jsonify(error="Unauthorized: No organization context"), 403

    kind = normalize_kind(request.form.get("kind"))
    if kind is None:
        return jsonify(error="kind must be FINANCIAL or MEMBERSHIP"), 400

    upload, err = _read_upload()
    if err:
        return err
    filename, data = upload

    try:
        sheets = _parse(filename, data)
    except SpreadsheetError as e:
        return jsonify(error=str(e)), 400

    selected = _selected_sheet_names(sheets) or [s.name for s in sheets]
    current_app.logger.info(
        "Import %s from %s by user %s (org %s): %d of %d sheets selected",
        kind, filename, identity.user_id, identity.organization_id, len(selected), len(sheets),
    )

    try:
        result = import_sheets(
            sheets,
            kind,
            selected,
            identity,
            chunk_size=current_app.config.get("IMPORT_CHUNK_SIZE", 500),
        )
    except MissingOrganizationError as e:
        return jsonify(error=str(e)), 403

    return jsonify(result.to_dict()), 200
