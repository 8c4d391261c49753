# app.py
import logging
import os

import click
from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException
from werkzeug.security import generate_password_hash

from adrms.config import Config
from adrms.extensions import db, init_extensions
from adrms.models import ROLE_SUPER_ADMIN, User

# ===== Blueprints =====
from adrms.routes.admin_routes import admin_bp
from adrms.routes.auth_routes import auth_bp
from adrms.routes.dashboard_routes import dashboard_bp
from adrms.routes.import_routes import import_bp
from adrms.routes.records_routes import records_bp


# ---------- helpers ----------
def _normalize_sqlite_uri(app: Flask) -> None:
    """
    If SQLALCHEMY_DATABASE_URI points at a *relative* SQLite file, rewrite it to an
    absolute path under app.instance_path.
    """
    uri = app.config.get("SQLALCHEMY_DATABASE_URI", "")
    if uri.startswith("sqlite:///"):
        rel = uri[len("sqlite:///"):]
        if rel and not os.path.isabs(rel):
            os.makedirs(app.instance_path, exist_ok=True)
            abs_path = os.path.join(app.instance_path, rel)
            app.config["SQLALCHEMY_DATABASE_URI"] = f"sqlite:///{abs_path}"
            app.logger.info("Normalized SQLite path -> %s", app.config["SQLALCHEMY_DATABASE_URI"])


# =========================
#   Database bootstrap
# =========================
def _auto_db_bootstrap(app: Flask) -> None:
    """Create any model tables that do not exist yet (Alembic handles changes)."""
    import adrms.models  # noqa: F401

    with app.app_context():
        db.create_all()


def _register_error_handlers(app: Flask) -> None:
    @app.errorhandler(HTTPException)
    def http_error(e):
        return jsonify(error=e.description or e.name), e.code

    @app.errorhandler(Exception)
    def unexpected_error(e):
        db.session.rollback()
        app.logger.exception("Unhandled error: %s", e)
        return jsonify(error="Internal server error. See server logs."), 500


# =========================
#   Super admin seeding
# =========================
def _seed_super_admin() -> str:
    """
    Create the super admin once; re-running restores its role.
    Env controls:
      SUPER_ADMIN_EMAIL (default: admin@adrms.com)
      SUPER_ADMIN_PASSWORD (default: adrms.admin123)
      SUPER_ADMIN_NAME (default: Admin)
    """
    email = (os.getenv("SUPER_ADMIN_EMAIL") or "admin@adrms.com").strip().lower()
    password = os.getenv("SUPER_ADMIN_PASSWORD") or "adrms.admin123"
    name = (os.getenv("SUPER_ADMIN_NAME") or "Admin").strip()

    user = User.query.filter_by(email=email).first()
    if user is None:
        db.session.add(User(
            name=name,
            email=email,
            password=generate_password_hash(password),
            role=ROLE_SUPER_ADMIN,
            organization_id=None,
        ))
        db.session.commit()
        return f"Created super admin {email}"

    if user.role == ROLE_SUPER_ADMIN:
        return f"Super admin {email} already present"

    user.role = ROLE_SUPER_ADMIN
    db.session.commit()
    return f"Promoted {email} to super admin"


def _register_commands(app: Flask) -> None:
    @app.cli.command("seed-admin")
    def seed_admin():
        """Create the super admin account from SUPER_ADMIN_* env vars."""
        message = _seed_super_admin()
        app.logger.info(message)
        click.echo(message)


# ---------- app factory ----------
def create_app(config_object=Config) -> Flask:
    app = Flask(__name__)
    app.config.from_object(config_object)

    logging.basicConfig(
        level=app.config.get("LOG_LEVEL", "INFO"),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    # Normalize SQLite path (avoid multiple relative files) BEFORE init db
    _normalize_sqlite_uri(app)

    init_extensions(app)
    _auto_db_bootstrap(app)
    _register_error_handlers(app)
    _register_commands(app)

    # Health check
    @app.get("/health")
    def health():
        return jsonify(status="ok")

    app.register_blueprint(auth_bp)
    app.register_blueprint(import_bp)
    app.register_blueprint(records_bp)
    app.register_blueprint(dashboard_bp)
    app.register_blueprint(admin_bp)

    return app


if __name__ == "__main__":
    app = create_app()
    app.run(host="localhost", port=int(os.getenv("PORT", "5001")), debug=True)
