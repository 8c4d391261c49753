# adrms/services/row_mapper.py
"""
Raw spreadsheet rows -> canonical record dicts.

Column aliases are static, ordered tables: for every target field the aliases
are tried in order and the first present, non-blank value wins. Header
matching ignores case and runs of whitespace, so ``" Total  (NGN)"`` still
matches ``"TOTAL (NGN)"``.

Mapping never raises. Missing or unreadable numbers become 0, missing text
becomes "", unreadable dates become None, and every target field is present
in the output.
"""
from __future__ import annotations

import math
from datetime import date, datetime, timedelta
from typing import Any, Dict, Iterable, List, NamedTuple, Optional, Tuple

import regex as _re

from adrms.models import FUND_FIELDS, MAJLIS_OPTIONS

KIND_FINANCIAL = "FINANCIAL"
KIND_MEMBERSHIP = "MEMBERSHIP"
KINDS = (KIND_FINANCIAL, KIND_MEMBERSHIP)

_KIND_ALIASES = {
    "financial": KIND_FINANCIAL,
    "chanda": KIND_FINANCIAL,
    "chandaam": KIND_FINANCIAL,
    "membership": KIND_MEMBERSHIP,
    "tajnid": KIND_MEMBERSHIP,
}

TEXT, NUMBER, DATE, MONTHS = "text", "number", "date", "months"


class Column(NamedTuple):
    field: str
    label: str              # display label used by export
    type: str
    aliases: Tuple[str, ...]


def normalize_kind(value: Optional[str]) -> Optional[str]:
    key = _re.sub(r"[^a-z]", "", (value or "").lower())
    return _KIND_ALIASES.get(key)


# ---------------------- alias tables ----------------------
_FUND_LABELS = {
    "chanda_aam": ("CHANDA AAM", ("CHANDA AAM", "CHANDA AM", "Chanda Aam")),
    "chanda_wasiyyat": ("CHANDA WASIYYAT", ("CHANDA WASIYYAT", "WASIYYAT", "Chanda Wasiyyat")),
    "jalsa_salana": ("JALSA SALANA", ("JALSA SALANA", "JALSA")),
    "tariki_jadid": ("TARIKI JADID", ("TARIKI JADID", "TAHRIK JADID", "TAHRIK-E-JADID")),
    "waqfi_jadid": ("WAQFI JADID", ("WAQFI JADID", "WAQF-E-JADID", "WAQF JADID")),
    "welfare_fund": ("WELFARE FUND", ("WELFARE FUND", "WELFARE")),
    "scholarship": ("SCHOLARSHIP", ("SCHOLARSHIP",)),
    "zakatul_fitr": ("ZAKATUL FITR", ("ZAKATUL FITR", "ZAKAT-UL-FITR")),
    "tabligh": ("TABLIGH", ("TABLIGH",)),
    "zakat": ("ZAKAT", ("ZAKAT",)),
    "sadakat": ("SADAKAT", ("SADAKAT", "SADAQAT")),
    "fitrana": ("FITRANA", ("FITRANA",)),
    # "Moaque" is how the supplier's template spells it
    "mosque_donation": ("MOSQUE DONATION", ("Moaque Donation", "Mosque Donation")),
    "mta": ("MTA", ("MTA",)),
    "centinary_khilafat": ("CENTINARY KHILAFAT", ("CENTINARY KHILAFAT", "CENTENARY KHILAFAT")),
    "wasiyyat_hissan_jaidad": ("WASIYYAT HISSAN JAIDAD", ("WASIYYAT HISSAN JAIDAD", "HISSA JAIDAD")),
    "bilal_fund": ("BILAL FUND", ("BILAL FUND",)),
    "yatama_fund": ("YATAMA FUND", ("YATAMA FUND",)),
    "local_fund": ("LOCAL FUND", ("LOCAL FUND",)),
    "miscellaneous": ("MISCELLANEOUS", ("MISCELLANEOUS", "MISC")),
    "maryam_fund": ("MARYAM FUND", ("MARYAM FUND",)),
}

FINANCIAL_COLUMNS: Tuple[Column, ...] = (
    Column("receipt_no", "RECEIPT NO", TEXT, ("RECEIPT NO", "RECEIPT NO.", "RECEIPT NUMBER", "RECEIPT")),
    Column("chanda_number", "CHANDA NO", TEXT, ("CHANDA NO", "CHANDA NO.", "CHANDA NUMBER", "CHANDA #")),
    Column("name", "NAME", TEXT, ("NAME", "NAMES", "FULL NAME", "CONTRIBUTOR NAME")),
    Column("month_paid_for", "MONTH PAID FOR", MONTHS, ("MONTH PAID FOR", "MONTHS PAID FOR", "MONTH")),
    *(Column(f, _FUND_LABELS[f][0], NUMBER, _FUND_LABELS[f][1]) for f in FUND_FIELDS),
    Column("total_ngn", "TOTAL (NGN)", NUMBER, ("TOTAL (NGN)", "Sub Total", "TOTAL")),
    Column("date", "DATE", DATE, ("DATE", "DATE PAID")),
)

MEMBERSHIP_COLUMNS: Tuple[Column, ...] = (
    Column("sn", "S/N", TEXT, ("S/N", "SN", "S/NO", "S.N")),
    Column("title", "TITLE", TEXT, ("TITLE",)),
    Column("surname", "SURNAME", TEXT, ("SURNAME", "LAST NAME")),
    Column("other_names", "OTHER NAMES", TEXT, ("OTHER NAMES", "OTHERNAMES", "FIRST NAME")),
    Column("majlis", "MAJLIS", TEXT, ("MAJLIS", "AUXILIARY")),
    Column("ref_name", "REF NAME", TEXT, ("REF NAME", "REF. NAME")),
    Column("chanda_no", "CHANDA NO", TEXT, ("CHANDA NO", "CHANDA NO.", "CHANDA NUMBER", "CHANDA #")),
    Column("wasiyyat_no", "WASIYYAT NO", TEXT, ("WASIYYAT NO", "WASIYYAT NO.", "WASIYYAT NUMBER")),
    Column("presence", "PRESENCE", TEXT, ("PRESENCE",)),
    Column("family", "FAMILY", TEXT, ("FAMILY",)),
    Column("election", "ELECTION", TEXT, ("ELECTION",)),
    Column("updated_on_portal", "UPDATED ON PORTAL", TEXT, ("UPDATED ON PORTAL",)),
    Column("academic_status", "ACADEMIC STATUS", TEXT, ("ACADEMIC STATUS",)),
    Column("date_of_birth", "DATE OF BIRTH", DATE, ("DATE OF BIRTH", "DOB", "D.O.B")),
    Column("email", "EMAIL", TEXT, ("EMAIL", "E-MAIL", "EMAIL ADDRESS")),
    Column("phone", "PHONE", TEXT, ("PHONE", "PHONE NO", "PHONE NUMBER", "TEL")),
    Column("address", "ADDRESS", TEXT, ("ADDRESS", "ADDRESS / JAMA'AT")),
)

COLUMNS_BY_KIND = {
    KIND_FINANCIAL: FINANCIAL_COLUMNS,
    KIND_MEMBERSHIP: MEMBERSHIP_COLUMNS,
}

IDENTIFYING_FIELDS = {
    KIND_FINANCIAL: ("name", "chanda_number", "receipt_no"),
    KIND_MEMBERSHIP: ("surname", "other_names", "chanda_no"),
}


# ---------------------- coercion ----------------------
def norm_label(s: Any) -> str:
    return _re.sub(r"\s+", " ", str(s or "")).strip().lower()


def _blank(v: Any) -> bool:
    if v is None:
        return True
    if isinstance(v, float) and math.isnan(v):
        return True
    return isinstance(v, str) and not v.strip()


def to_number(v: Any) -> float:
    if _blank(v) or isinstance(v, bool):
        return 0.0
    if isinstance(v, (int, float)):
        f = float(v)
    else:
        s = str(v).strip().replace(",", "").replace("₦", "").replace("NGN", "").strip()
        try:
            f = float(s)
        except ValueError:
            return 0.0
    if math.isnan(f) or math.isinf(f):
        return 0.0
    return f


def to_text(v: Any) -> str:
    if _blank(v):
        return ""
    if isinstance(v, float) and v.is_integer():
        return str(int(v))
    if isinstance(v, datetime):
        return v.date().isoformat() if v.time() == datetime.min.time() else v.isoformat()
    if isinstance(v, date):
        return v.isoformat()
    return str(v).strip()


_DATE_FORMATS = ("%d/%m/%Y", "%Y-%m-%d", "%d-%m-%Y", "%d-%b-%Y", "%Y-%m-%d %H:%M:%S", "%Y-%m-%dT%H:%M:%S")


def _maybe_excel_serial(v) -> Optional[date]:
    try:
        fv = float(v)
    except (TypeError, ValueError):
        return None
    if 20000 < fv < 90000:
        base = datetime(1899, 12, 30)
        return (base + timedelta(days=int(fv))).date()
    return None


def to_date(v: Any) -> Optional[date]:
    if _blank(v) or isinstance(v, bool):
        return None
    if isinstance(v, datetime):
        return v.date()
    if isinstance(v, date):
        return v
    if isinstance(v, (int, float)):
        return _maybe_excel_serial(v)
    s = str(v).strip().rstrip("Z")
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(s, fmt).date()
        except ValueError:
            continue
    return None


def normalize_months(v: Any) -> str:
    """``"jan2024,Feb2024"`` -> ``"JAN2024, FEB2024"``."""
    text = to_text(v)
    if not text:
        return ""
    tokens = [t.strip().upper() for t in text.split(",")]
    return ", ".join(t for t in tokens if t)


_COERCE = {
    TEXT: to_text,
    NUMBER: to_number,
    DATE: to_date,
    MONTHS: normalize_months,
}


# ---------------------- mapping ----------------------
def _lookup(index: Dict[str, Any], aliases: Iterable[str]) -> Any:
    for alias in aliases:
        v = index.get(norm_label(alias))
        if not _blank(v):
            return v
    return None


def map_row(kind: str, raw: Any) -> Dict[str, Any]:
    columns = COLUMNS_BY_KIND[kind]
    index: Dict[str, Any] = {}
    if isinstance(raw, dict):
        for k, v in raw.items():
            index.setdefault(norm_label(k), v)

    out: Dict[str, Any] = {}
    for col in columns:
        out[col.field] = _COERCE[col.type](_lookup(index, col.aliases))

    if kind == KIND_MEMBERSHIP and out["majlis"].upper() in MAJLIS_OPTIONS:
        out["majlis"] = out["majlis"].upper()
    return out


def map_financial_row(raw: Any) -> Dict[str, Any]:
    return map_row(KIND_FINANCIAL, raw)


def map_membership_row(raw: Any) -> Dict[str, Any]:
    return map_row(KIND_MEMBERSHIP, raw)


# ---------------------- validity filter ----------------------
def is_valid_record(kind: str, record: Dict[str, Any]) -> bool:
    """At least one identifying field must be non-empty after trimming."""
    return any(str(record.get(f) or "").strip() for f in IDENTIFYING_FIELDS[kind])


def filter_valid(kind: str, records: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return [r for r in records if is_valid_record(kind, r)]


def map_rows(kind: str, raw_rows: Iterable[Any]) -> List[Dict[str, Any]]:
    """Mapper followed by the validity filter."""
    return filter_valid(kind, (map_row(kind, r) for r in raw_rows))


# ---------------------- manual entry ----------------------
def coerce_payload(kind: str, payload: Dict[str, Any], partial: bool = False) -> Dict[str, Any]:
    """
    Coerce a JSON payload keyed by field name the same way imported cells are
    coerced. With ``partial`` only the fields present in the payload are
    returned; otherwise absent fields get their defaults.
    """
    out: Dict[str, Any] = {}
    for col in COLUMNS_BY_KIND[kind]:
        if col.field in payload:
            out[col.field] = _COERCE[col.type](payload.get(col.field))
        elif not partial:
            out[col.field] = _COERCE[col.type](None)
    if kind == KIND_MEMBERSHIP and "majlis" in out and out["majlis"].upper() in MAJLIS_OPTIONS:
        out["majlis"] = out["majlis"].upper()
    return out
