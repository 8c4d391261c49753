from __future__ import annotations

from datetime import datetime

from sqlalchemy import UniqueConstraint

from adrms.extensions import db

ROLE_STANDARD_ADMIN = "STANDARD_ADMIN"
ROLE_SUPER_ADMIN = "SUPER_ADMIN"

MAJLIS_OPTIONS = ("ATFAL", "KHUDDAM", "ANSARULLAH", "LAJNAH", "NASIRAT")

# canonical fund order (export layout follows it)
FUND_FIELDS = (
    "chanda_aam",
    "chanda_wasiyyat",
    "jalsa_salana",
    "tariki_jadid",
    "waqfi_jadid",
    "welfare_fund",
    "scholarship",
    "zakatul_fitr",
    "tabligh",
    "zakat",
    "sadakat",
    "fitrana",
    "mosque_donation",
    "mta",
    "centinary_khilafat",
    "wasiyyat_hissan_jaidad",
    "bilal_fund",
    "yatama_fund",
    "local_fund",
    "miscellaneous",
    "maryam_fund",
)

# never exported, never accepted from a client payload
INTERNAL_FIELDS = ("id", "organization_id", "admin_id", "natural_key", "created_at", "updated_at")


# ------------------ Organization Model ------------------
class Organization(db.Model):
    __tablename__ = "organizations"

    id   = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(150), unique=True, nullable=False)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    admins = db.relationship("User", backref="organization", lazy=True)

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Organization {self.id} {self.name}>"


# ------------------ User Model ------------------
class User(db.Model):
    __tablename__ = "users"

    id    = db.Column(db.Integer, primary_key=True)
    name  = db.Column(db.String(150), nullable=False)
    email = db.Column(db.String(120), unique=True, nullable=False)

    password = db.Column(db.String(200), nullable=False)
    role     = db.Column(db.String(32), nullable=False, default=ROLE_STANDARD_ADMIN)

    organization_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=True, index=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "role": self.role,
            "organization_id": self.organization_id,
        }

    def __repr__(self):
        return f"<User {self.id} {self.email}>"


# ------------------ Financial (Chanda) Record ------------------
class FinancialRecord(db.Model):
    """One contribution ledger entry. ``total_ngn`` is stored as supplied."""

    __tablename__ = "financial_records"

    id = db.Column(db.Integer, primary_key=True)

    organization_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    admin_id        = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    chanda_number  = db.Column(db.String(64),  nullable=False, default="")
    name           = db.Column(db.String(200), nullable=False, default="")
    receipt_no     = db.Column(db.String(64),  nullable=False, default="")
    date           = db.Column(db.Date, nullable=True, index=True)
    month_paid_for = db.Column(db.String(255), nullable=False, default="")

    chanda_aam             = db.Column(db.Float, nullable=False, default=0.0)
    chanda_wasiyyat        = db.Column(db.Float, nullable=False, default=0.0)
    jalsa_salana           = db.Column(db.Float, nullable=False, default=0.0)
    tariki_jadid           = db.Column(db.Float, nullable=False, default=0.0)
    waqfi_jadid            = db.Column(db.Float, nullable=False, default=0.0)
    welfare_fund           = db.Column(db.Float, nullable=False, default=0.0)
    scholarship            = db.Column(db.Float, nullable=False, default=0.0)
    zakatul_fitr           = db.Column(db.Float, nullable=False, default=0.0)
    tabligh                = db.Column(db.Float, nullable=False, default=0.0)
    zakat                  = db.Column(db.Float, nullable=False, default=0.0)
    sadakat                = db.Column(db.Float, nullable=False, default=0.0)
    fitrana                = db.Column(db.Float, nullable=False, default=0.0)
    mosque_donation        = db.Column(db.Float, nullable=False, default=0.0)
    mta                    = db.Column(db.Float, nullable=False, default=0.0)
    centinary_khilafat     = db.Column(db.Float, nullable=False, default=0.0)
    wasiyyat_hissan_jaidad = db.Column(db.Float, nullable=False, default=0.0)
    bilal_fund             = db.Column(db.Float, nullable=False, default=0.0)
    yatama_fund            = db.Column(db.Float, nullable=False, default=0.0)
    local_fund             = db.Column(db.Float, nullable=False, default=0.0)
    miscellaneous          = db.Column(db.Float, nullable=False, default=0.0)
    maryam_fund            = db.Column(db.Float, nullable=False, default=0.0)

    total_ngn = db.Column(db.Float, nullable=False, default=0.0)

    natural_key = db.Column(db.String(512), nullable=False)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    organization = db.relationship("Organization", lazy=True)

    __table_args__ = (
        UniqueConstraint("organization_id", "natural_key", name="uq_financial_org_natural_key"),
    )

    def to_dict(self):
        out = {c.name: getattr(self, c.name) for c in self.__table__.columns if c.name != "natural_key"}
        out["date"] = self.date.isoformat() if self.date else None
        out["created_at"] = self.created_at.isoformat() if self.created_at else None
        out["updated_at"] = self.updated_at.isoformat() if self.updated_at else None
        out["organization_name"] = self.organization.name if self.organization else None
        return out

    def __repr__(self):
        return f"<FinancialRecord {self.id} {self.receipt_no or self.chanda_number}>"


# ------------------ Membership (Tajnid) Record ------------------
class MembershipRecord(db.Model):
    __tablename__ = "membership_records"

    id = db.Column(db.Integer, primary_key=True)

    organization_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    admin_id        = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    sn                = db.Column(db.String(32),  nullable=False, default="")
    surname           = db.Column(db.String(120), nullable=False, default="")
    other_names       = db.Column(db.String(200), nullable=False, default="")
    title             = db.Column(db.String(50),  nullable=False, default="")
    majlis            = db.Column(db.String(50),  nullable=False, default="", index=True)
    ref_name          = db.Column(db.String(200), nullable=False, default="")
    chanda_no         = db.Column(db.String(64),  nullable=False, default="")
    wasiyyat_no       = db.Column(db.String(64),  nullable=False, default="")
    presence          = db.Column(db.String(50),  nullable=False, default="")
    family            = db.Column(db.String(100), nullable=False, default="")
    election          = db.Column(db.String(50),  nullable=False, default="")
    updated_on_portal = db.Column(db.String(50),  nullable=False, default="")
    academic_status   = db.Column(db.String(100), nullable=False, default="")
    date_of_birth     = db.Column(db.Date, nullable=True)
    email             = db.Column(db.String(120), nullable=False, default="")
    phone             = db.Column(db.String(50),  nullable=False, default="")
    address           = db.Column(db.String(255), nullable=False, default="")

    natural_key = db.Column(db.String(512), nullable=False)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    organization = db.relationship("Organization", lazy=True)

    __table_args__ = (
        UniqueConstraint("organization_id", "natural_key", name="uq_membership_org_natural_key"),
    )

    def to_dict(self):
        out = {c.name: getattr(self, c.name) for c in self.__table__.columns if c.name != "natural_key"}
        out["date_of_birth"] = self.date_of_birth.isoformat() if self.date_of_birth else None
        out["created_at"] = self.created_at.isoformat() if self.created_at else None
        out["updated_at"] = self.updated_at.isoformat() if self.updated_at else None
        out["organization_name"] = self.organization.name if self.organization else None
        return out

    def __repr__(self):
        return f"<MembershipRecord {self.id} {self.surname} {self.other_names}>"
