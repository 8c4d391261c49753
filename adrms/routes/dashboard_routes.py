# adrms/routes/dashboard_routes.py
from flask import Blueprint, jsonify
from flask_jwt_extended import jwt_required

from adrms.services.auth_utils import MissingOrganizationError, get_request_identity
from adrms.services.record_service import dashboard_stats

dashboard_bp = Blueprint("dashboard", __name__, url_prefix="/api/dashboard")


@dashboard_bp.get("/stats")
@jwt_required()
def stats():
    try:
        return jsonify(dashboard_stats(get_request_identity())), 200
    except MissingOrganizationError as e:
        return jsonify(error=str(e)), 403
