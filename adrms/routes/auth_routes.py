# adrms/routes/auth_routes.py
from flask import Blueprint, current_app, jsonify, request
from flask_jwt_extended import create_access_token
from werkzeug.security import check_password_hash

from adrms.models import User

auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


def issue_token(user: User) -> str:
    """Access token carrying the organization and role claims every route reads."""
    return create_access_token(
        identity=str(user.id),
        additional_claims={"organization_id": user.organization_id, "role": user.role},
    )


@auth_bp.post("/login")
def login():
    """
    Accepts JSON: { email, password }
    Returns a bearer token and the user on success.
    """
    data = request.get_json(silent=True) or {}
    email = (data.get("email") or "").strip().lower()
    password = data.get("password") or ""

    if not email or not password:
        return jsonify(error="Missing credentials"), 400

    user = User.query.filter(User.email.ilike(email)).first()
    if not user or not user.password or not check_password_hash(user.password, password):
        current_app.logger.info("Failed login for %s", email)
        return jsonify(error="Invalid email or password"), 401

    return jsonify(access_token=issue_token(user), user=user.to_dict()), 200
