# adrms/services/bulk_upsert.py
from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Any, Dict, Iterator, List, Optional, Sequence

from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert

from adrms.extensions import db
from adrms.models import FinancialRecord, MembershipRecord
from adrms.services.row_mapper import KIND_FINANCIAL, KIND_MEMBERSHIP

logger = logging.getLogger(__name__)

MODEL_FOR_KIND = {
    KIND_FINANCIAL: FinancialRecord,
    KIND_MEMBERSHIP: MembershipRecord,
}

DEFAULT_CHUNK_SIZE = 500


# ---------------------- natural keys ----------------------
def _s(v: Any) -> str:
    return str(v or "").strip()


def financial_natural_key(rec: Dict[str, Any]) -> str:
    receipt = _s(rec.get("receipt_no"))
    if receipt:
        return f"receipt:{receipt}"
    d = rec.get("date")
    d_txt = d.isoformat() if isinstance(d, date) else _s(d)
    total = float(rec.get("total_ngn") or 0.0)
    return f"composite:{_s(rec.get('chanda_number'))}|{_s(rec.get('month_paid_for'))}|{d_txt}|{total:.2f}"


def membership_natural_key(rec: Dict[str, Any]) -> str:
    chanda_no = _s(rec.get("chanda_no"))
    if chanda_no:
        return f"chanda:{chanda_no}"
    key = f"name:{_s(rec.get('surname'))}|{_s(rec.get('other_names'))}"
    phone = _s(rec.get("phone"))
    if phone:
        key += f"|{phone}"
    return key


def natural_key_for(kind: str, rec: Dict[str, Any]) -> str:
    if kind == KIND_FINANCIAL:
        return financial_natural_key(rec)
    return membership_natural_key(rec)


# ---------------------- bulk write ----------------------
def _dialect_insert():
    name = (db.engine.name or "").lower()
    return pg_insert if "postgre" in name else sqlite_insert


def _chunks(rows: Sequence[Dict[str, Any]], size: int) -> Iterator[Sequence[Dict[str, Any]]]:
    size = max(1, int(size or DEFAULT_CHUNK_SIZE))
    for i in range(0, len(rows), size):
        yield rows[i:i + size]


def bulk_insert_if_absent(
    kind: str,
    records: List[Dict[str, Any]],
    organization_id: int,
    admin_id: Optional[int],
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> int:
    """
    Insert every record whose natural key is not yet stored for the
    organization; existing rows are left untouched. Returns the number of
    rows actually inserted.

    The whole list is written in one transaction. Any failure rolls it back
    and propagates, so a sheet either lands completely or not at all.
    """
    if not records:
        return 0

    model = MODEL_FOR_KIND[kind]
    columns = {c.name for c in model.__table__.columns} - {"id"}
    now = datetime.utcnow()

    rows = []
    for rec in records:
        row = {k: v for k, v in rec.items() if k in columns}
        row.update(
            organization_id=organization_id,
            admin_id=admin_id,
            natural_key=natural_key_for(kind, rec),
            created_at=now,
            updated_at=now,
        )
        rows.append(row)

    insert_fn = _dialect_insert()
    inserted = 0
    try:
        for chunk in _chunks(rows, chunk_size):
            stmt = insert_fn(model.__table__).values(list(chunk))
            stmt = stmt.on_conflict_do_nothing(index_elements=["organization_id", "natural_key"])
            result = db.session.execute(stmt)
            inserted += max(result.rowcount or 0, 0)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.debug("%s bulk write: %d submitted, %d inserted", kind, len(rows), inserted)
    return inserted
