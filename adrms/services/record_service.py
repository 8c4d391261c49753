# adrms/services/record_service.py
from __future__ import annotations

import math
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError

from adrms.extensions import db
from adrms.models import INTERNAL_FIELDS, FinancialRecord, MembershipRecord
from adrms.services.auth_utils import Identity
from adrms.services.bulk_upsert import MODEL_FOR_KIND, natural_key_for
from adrms.services.row_mapper import KIND_FINANCIAL, KIND_MEMBERSHIP, coerce_payload

MONTH_ABBRS = ("JAN", "FEB", "MAR", "APR", "MAY", "JUN", "JUL", "AUG", "SEP", "OCT", "NOV", "DEC")

_SEARCH_FIELDS = {
    KIND_FINANCIAL: ("name", "chanda_number", "receipt_no"),
    KIND_MEMBERSHIP: ("surname", "other_names", "chanda_no", "email"),
}

_REQUIRED_ON_CREATE = {
    KIND_FINANCIAL: "name",
    KIND_MEMBERSHIP: "surname",
}


class DuplicateRecordError(ValueError):
    """A record with the same natural key already exists in the organization."""


class RecordValidationError(ValueError):
    pass


def month_abbr(value: Optional[str]) -> Optional[str]:
    """``"January"`` / ``"jan"`` -> ``"JAN"``; anything else -> None."""
    s = (value or "").strip().upper()[:3]
    return s if s in MONTH_ABBRS else None


# ---------------------- queries ----------------------
def scoped_query(kind: str, identity: Identity, org_id: Optional[int] = None):
    """Records the identity may see. Super admins see every organization unless ``org_id`` narrows it."""
    model = MODEL_FOR_KIND[kind]
    q = model.query
    if identity.is_super_admin:
        if org_id:
            q = q.filter(model.organization_id == org_id)
        return q
    return q.filter(model.organization_id == identity.require_organization())


def filtered_query(
    kind: str,
    identity: Identity,
    search: Optional[str] = None,
    month: Optional[str] = None,
    year: Optional[Any] = None,
    majlis: Optional[str] = None,
    org_id: Optional[int] = None,
):
    model = MODEL_FOR_KIND[kind]
    q = scoped_query(kind, identity, org_id=org_id)

    term = (search or "").strip()
    if term:
        like = f"%{term}%"
        q = q.filter(or_(*[getattr(model, f).ilike(like) for f in _SEARCH_FIELDS[kind]]))

    if kind == KIND_FINANCIAL:
        abbr = month_abbr(month)
        yr = str(year).strip() if year not in (None, "") else ""
        if abbr or yr:
            q = q.filter(FinancialRecord.month_paid_for.ilike(f"%{abbr or ''}{yr}%"))
    elif majlis:
        q = q.filter(func.upper(MembershipRecord.majlis) == majlis.strip().upper())

    return q


def list_records(
    kind: str,
    identity: Identity,
    page: int = 1,
    limit: int = 20,
    **filters,
) -> Dict[str, Any]:
    model = MODEL_FOR_KIND[kind]
    page = max(1, page)
    limit = max(1, min(limit, 200))

    q = filtered_query(kind, identity, **filters)
    total = q.count()
    rows = (
        q.order_by(model.created_at.desc(), model.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return {
        "records": [r.to_dict() for r in rows],
        "total": total,
        "page": page,
        "total_pages": math.ceil(total / limit) if total else 0,
    }


def get_record(kind: str, identity: Identity, record_id: int):
    model = MODEL_FOR_KIND[kind]
    return scoped_query(kind, identity).filter(model.id == record_id).first()


# ---------------------- writes ----------------------
def _commit_or_duplicate() -> None:
    try:
        db.session.commit()
    except IntegrityError as e:
        db.session.rollback()
        raise DuplicateRecordError("A record with the same identifying details already exists") from e


def create_record(kind: str, identity: Identity, payload: Dict[str, Any]):
    org_id = identity.require_organization()
    data = coerce_payload(kind, payload or {})
    required = _REQUIRED_ON_CREATE[kind]
    if not data.get(required):
        raise RecordValidationError(f"{required} is required")

    model = MODEL_FOR_KIND[kind]
    rec = model(
        **data,
        organization_id=org_id,
        admin_id=identity.user_id,
        natural_key=natural_key_for(kind, data),
    )
    db.session.add(rec)
    _commit_or_duplicate()
    return rec


def update_record(kind: str, identity: Identity, record_id: int, payload: Dict[str, Any]):
    rec = get_record(kind, identity, record_id)
    if rec is None:
        return None

    changes = coerce_payload(kind, payload or {}, partial=True)
    required = _REQUIRED_ON_CREATE[kind]
    if required in changes and not changes[required]:
        raise RecordValidationError(f"{required} cannot be empty")

    for k, v in changes.items():
        setattr(rec, k, v)
    rec.natural_key = natural_key_for(kind, {c: getattr(rec, c) for c in payload_fields(kind)})
    rec.updated_at = datetime.utcnow()
    _commit_or_duplicate()
    return rec


def payload_fields(kind: str) -> List[str]:
    model = MODEL_FOR_KIND[kind]
    return [c.name for c in model.__table__.columns if c.name not in INTERNAL_FIELDS]


def delete_records(kind: str, identity: Identity, ids: Iterable[Any]) -> int:
    model = MODEL_FOR_KIND[kind]
    wanted = []
    for x in ids or []:
        try:
            wanted.append(int(x))
        except (TypeError, ValueError):
            continue
    if not wanted:
        return 0
    q = scoped_query(kind, identity).filter(model.id.in_(wanted))
    deleted = q.delete(synchronize_session=False)
    db.session.commit()
    return int(deleted or 0)


# ---------------------- dashboard ----------------------
def dashboard_stats(identity: Identity, now: Optional[datetime] = None) -> Dict[str, Any]:
    now = now or datetime.utcnow()
    month_start = datetime(now.year, now.month, 1)

    financial = scoped_query(KIND_FINANCIAL, identity)
    membership = scoped_query(KIND_MEMBERSHIP, identity)

    total_amount = financial.with_entities(func.coalesce(func.sum(FinancialRecord.total_ngn), 0.0)).scalar()
    monthly_amount = (
        financial.filter(FinancialRecord.created_at >= month_start)
        .with_entities(func.coalesce(func.sum(FinancialRecord.total_ngn), 0.0))
        .scalar()
    )
    return {
        "financial_records": financial.count(),
        "membership_records": membership.count(),
        "total_amount": float(total_amount or 0.0),
        "monthly_amount": float(monthly_amount or 0.0),
    }
