from io import BytesIO

import pytest
from flask_jwt_extended import create_access_token
from openpyxl import Workbook

from adrms.config import TestConfig
from adrms.extensions import db as _db
from adrms.models import ROLE_STANDARD_ADMIN, ROLE_SUPER_ADMIN, Organization, User
from adrms.services.auth_utils import Identity
from app import create_app


@pytest.fixture()
def app():
    app = create_app(TestConfig)
    with app.app_context():
        _db.create_all()
        yield app
        _db.session.remove()
        _db.drop_all()


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def orgs(app):
    a = Organization(name="Lagos Central")
    b = Organization(name="Ibadan North")
    _db.session.add_all([a, b])
    _db.session.commit()
    return a, b


@pytest.fixture()
def users(orgs):
    a, b = orgs
    admin_a = User(name="Admin A", email="a@example.com", password="x", role=ROLE_STANDARD_ADMIN, organization_id=a.id)
    admin_b = User(name="Admin B", email="b@example.com", password="x", role=ROLE_STANDARD_ADMIN, organization_id=b.id)
    root = User(name="Root", email="root@example.com", password="x", role=ROLE_SUPER_ADMIN, organization_id=None)
    _db.session.add_all([admin_a, admin_b, root])
    _db.session.commit()
    return admin_a, admin_b, root


def _identity_for(user):
    return Identity(user_id=user.id, organization_id=user.organization_id, role=user.role)


def _headers_for(user):
    token = create_access_token(
        identity=str(user.id),
        additional_claims={"organization_id": user.organization_id, "role": user.role},
    )
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def identity(users):
    return _identity_for(users[0])


@pytest.fixture()
def other_identity(users):
    return _identity_for(users[1])


@pytest.fixture()
def super_identity(users):
    return _identity_for(users[2])


@pytest.fixture()
def auth_headers(users):
    return _headers_for(users[0])


@pytest.fixture()
def other_headers(users):
    return _headers_for(users[1])


@pytest.fixture()
def super_headers(users):
    return _headers_for(users[2])


def workbook_bytes(sheets):
    """``{"Sheet name": [[row cells], ...]}`` -> .xlsx bytes."""
    wb = Workbook()
    wb.remove(wb.active)
    for name, rows in sheets.items():
        ws = wb.create_sheet(title=name)
        for row in rows:
            ws.append(list(row))
    bio = BytesIO()
    wb.save(bio)
    return bio.getvalue()


FINANCIAL_HEADER = ["RECEIPT NO", "CHANDA NO", "NAME", "MONTH PAID FOR", "CHANDA AAM", "JALSA SALANA", "TOTAL (NGN)", "DATE"]


def financial_rows(n, prefix="R"):
    return [
        [f"{prefix}{i:03d}", f"C{i}", f"Member {i}", "JAN2024", 1000.0 * i, 0, 1000.0 * i, "15/01/2024"]
        for i in range(1, n + 1)
    ]
