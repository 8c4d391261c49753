# adrms/routes/admin_routes.py
from flask import Blueprint, current_app, jsonify, request
from flask_jwt_extended import jwt_required
from werkzeug.security import generate_password_hash

from adrms.extensions import db
from adrms.models import ROLE_STANDARD_ADMIN, Organization, User
from adrms.services.auth_utils import super_admin_required

admin_bp = Blueprint("admin", __name__, url_prefix="/api/admin")


def admin_email_for(organization_name: str, number: str) -> str:
    """``("Lagos Central", "01")`` -> ``"lagoscentral01@jamaat.com"``."""
    slug = "".join(organization_name.split()).lower()
    return f"{slug}{number}@jamaat.com"


# ───────────────────────── Organizations ─────────────────────────
@admin_bp.get("/organizations")
@jwt_required()
@super_admin_required
def list_organizations():
    orgs = Organization.query.order_by(Organization.name.asc()).all()
    return jsonify([o.to_dict() for o in orgs]), 200


# ───────────────────────── Admin accounts ─────────────────────────
@admin_bp.post("/admins")
@jwt_required()
@super_admin_required
def create_admin():
    """
    JSON: {full_name, organization_name, password_number}
    Creates the organization when it does not exist yet.
    """
    data = request.get_json(silent=True) or {}
    full_name = (data.get("full_name") or "").strip()
    org_name = (data.get("organization_name") or "").strip()
    number = str(data.get("password_number") or "").strip()

    if not full_name or not org_name or not number:
        return jsonify(error="full_name, organization_name and password_number are required"), 400

    email = admin_email_for(org_name, number)
    if User.query.filter_by(email=email).first():
        return jsonify(error="An admin with this email already exists"), 409

    org = Organization.query.filter_by(name=org_name).first()
    if org is None:
        org = Organization(name=org_name)
        db.session.add(org)
        db.session.flush()

    user = User(
        name=full_name,
        email=email,
        password=generate_password_hash(f"{org_name}{number}"),
        role=ROLE_STANDARD_ADMIN,
        organization_id=org.id,
    )
    db.session.add(user)
    db.session.commit()

    current_app.logger.info("Created admin %s for organization %s", email, org.name)
    return jsonify(user=user.to_dict(), organization=org.to_dict()), 201
