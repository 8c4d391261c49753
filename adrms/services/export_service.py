# adrms/services/export_service.py
"""
Stored records -> spreadsheet-ready rows, and rows -> .xlsx bytes.

Rows are grouped by calendar month in chronological order. Each group opens
with a one-cell header row (``"JANUARY 2024"``); groups after the first are
preceded by an empty separator row. The parser skips both kinds of row, so an
exported workbook imports back into the same records.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time
from io import BytesIO
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

import pandas as pd
from openpyxl.styles import Font

from adrms.models import FUND_FIELDS
from adrms.services.auth_utils import Identity
from adrms.services.bulk_upsert import MODEL_FOR_KIND
from adrms.services.record_service import filtered_query
from adrms.services.row_mapper import (
    COLUMNS_BY_KIND,
    DATE,
    KIND_FINANCIAL,
    KIND_MEMBERSHIP,
    MONTHS,
    NUMBER,
    Column,
    norm_label,
    normalize_months,
    to_text,
)

logger = logging.getLogger(__name__)

NUMBER_FORMAT = "#,##0.00"
NO_DATE_GROUP = "NO DATE"

SHEET_TITLES = {
    KIND_FINANCIAL: "Financial Records",
    KIND_MEMBERSHIP: "Membership Records",
}

_MONTH_NAMES = (
    "JANUARY", "FEBRUARY", "MARCH", "APRIL", "MAY", "JUNE",
    "JULY", "AUGUST", "SEPTEMBER", "OCTOBER", "NOVEMBER", "DECEMBER",
)


@dataclass
class ExportTable:
    kind: str
    columns: List[str]                       # display labels, canonical order
    rows: List[Dict[str, Any]] = field(default_factory=list)
    group_rows: List[int] = field(default_factory=list)   # indexes into rows
    number_format: str = NUMBER_FORMAT

    @property
    def data_row_count(self) -> int:
        return sum(1 for i, r in enumerate(self.rows) if r and i not in self.group_rows)


# ---------------------- shaping ----------------------
def _as_datetime(v: Any) -> Optional[datetime]:
    if isinstance(v, datetime):
        return v
    if isinstance(v, date):
        return datetime.combine(v, time.min)
    if isinstance(v, str) and v.strip():
        try:
            return datetime.fromisoformat(v.strip())
        except ValueError:
            return None
    return None


def _sort_moment(kind: str, rec: Mapping[str, Any]) -> Optional[datetime]:
    if kind == KIND_FINANCIAL:
        return _as_datetime(rec.get("date")) or _as_datetime(rec.get("created_at"))
    return _as_datetime(rec.get("created_at"))


def group_label(moment: Optional[datetime]) -> str:
    if moment is None:
        return NO_DATE_GROUP
    return f"{_MONTH_NAMES[moment.month - 1]} {moment.year}"


def _select_columns(kind: str, requested: Optional[Sequence[str]]) -> List[Column]:
    canonical = list(COLUMNS_BY_KIND[kind])
    wanted = {norm_label(c) for c in (requested or []) if str(c or "").strip()}
    if not wanted:
        return canonical
    chosen = [c for c in canonical if norm_label(c.label) in wanted or norm_label(c.field) in wanted]
    if not chosen:
        raise ValueError("None of the requested columns exist for this record kind")
    return chosen


def _display(col: Column, value: Any) -> Any:
    if col.type == DATE:
        d = _as_datetime(value)
        return d.strftime("%d/%m/%Y") if d else None
    if col.type == MONTHS:
        return normalize_months(value) or None
    if col.type == NUMBER:
        n = float(value or 0.0)
        if col.field in FUND_FIELDS and n == 0:
            return None
        return n
    return to_text(value) or None


def shape_export(
    kind: str,
    records: Iterable[Mapping[str, Any]],
    columns: Optional[Sequence[str]] = None,
) -> ExportTable:
    """
    Group ``records`` by month and format them for a spreadsheet.

    ``columns`` may name display labels or field names; matching ignores case
    and the output keeps the canonical column order. Raises ``ValueError``
    when ``columns`` is given but names nothing known.
    """
    cols = _select_columns(kind, columns)
    labels = [c.label for c in cols]
    table = ExportTable(kind=kind, columns=labels)

    def _key(rec) -> Tuple[int, datetime]:
        m = _sort_moment(kind, rec)
        return (1, datetime.max) if m is None else (0, m)

    current: Optional[str] = None
    for rec in sorted(records, key=_key):
        label = group_label(_sort_moment(kind, rec))
        if label != current:
            if current is not None:
                table.rows.append({})
            table.group_rows.append(len(table.rows))
            table.rows.append({labels[0]: label})
            current = label
        table.rows.append({c.label: _display(c, rec.get(c.field)) for c in cols})

    return table


# ---------------------- query + shape ----------------------
def _record_values(rec) -> Dict[str, Any]:
    return {c.name: getattr(rec, c.name) for c in rec.__table__.columns}


def export_records(
    kind: str,
    identity: Identity,
    search: Optional[str] = None,
    month: Optional[str] = None,
    year: Optional[Any] = None,
    majlis: Optional[str] = None,
    org_id: Optional[int] = None,
    columns: Optional[Sequence[str]] = None,
) -> ExportTable:
    """Full filtered set for the identity (no pagination), shaped for export."""
    model = MODEL_FOR_KIND[kind]
    q = filtered_query(kind, identity, search=search, month=month, year=year, majlis=majlis, org_id=org_id)
    records = [_record_values(r) for r in q.order_by(model.id.asc()).all()]
    table = shape_export(kind, records, columns)
    logger.info("Exported %d %s records in %d month groups", table.data_row_count, kind, len(table.group_rows))
    return table


# ---------------------- workbook ----------------------
def sheet_title(kind: str) -> str:
    return SHEET_TITLES[kind]


def build_workbook(table: ExportTable) -> bytes:
    df = pd.DataFrame(table.rows, columns=table.columns)
    title = sheet_title(table.kind)
    bold = Font(bold=True)

    bio = BytesIO()
    with pd.ExcelWriter(bio, engine="openpyxl") as writer:
        df.to_excel(writer, sheet_name=title, index=False)
        ws = writer.sheets[title]

        for cell in ws[1]:
            cell.font = bold
        for idx in table.group_rows:
            # +2: one for the header row, one for 1-based rows
            ws.cell(row=idx + 2, column=1).font = bold

        for col_cells in ws.iter_cols(min_row=1, max_row=ws.max_row):
            longest = max(len("" if c.value is None else str(c.value)) for c in col_cells)
            ws.column_dimensions[col_cells[0].column_letter].width = min(max(longest + 2, 10), 40)
            for c in col_cells[1:]:
                if isinstance(c.value, (int, float)) and not isinstance(c.value, bool):
                    c.number_format = table.number_format

    return bio.getvalue()
