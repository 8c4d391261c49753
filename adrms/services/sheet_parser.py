# adrms/services/sheet_parser.py
"""
Spreadsheet bytes -> named sheets of header-labelled rows.

Each sheet comes back as a ``ParsedSheet``:

    ParsedSheet(
        name="OCT 2024",
        header_row_index=2,        # 0-based index into the decoded row matrix
        header=["S/N", "NAME", ...],
        rows=[{"S/N": 1, "NAME": "...", ...}, ...],
    )

Header detection: scan the first ``scan_rows`` rows and take the first one with
more than ``min_cells`` non-empty cells; fall back to row 0. Title banners and
merged cells above the real header are therefore ignored.

A sheet that cannot be read as a table yields no rows; only a file that is not
a workbook at all raises ``SpreadsheetError``.
"""
from __future__ import annotations

import io
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import pandas as pd
import regex as _re
from openpyxl import load_workbook

logger = logging.getLogger(__name__)

HEADER_SCAN_ROWS = 10
HEADER_MIN_CELLS = 5

WORKBOOK_EXTENSIONS = {".xlsx", ".xlsm"}
CSV_EXTENSIONS = {".csv"}
SUPPORTED_EXTENSIONS = WORKBOOK_EXTENSIONS | CSV_EXTENSIONS

RawRow = Dict[str, Any]

_MONTH_BANNER = _re.compile(
    r"^(january|february|march|april|may|june|july|august|september|october|november|december)\s+\d{4}$",
    _re.I,
)


class SpreadsheetError(ValueError):
    """The uploaded bytes could not be opened as a spreadsheet."""


@dataclass
class ParsedSheet:
    name: str
    header_row_index: int = 0
    header: List[str] = field(default_factory=list)
    rows: List[RawRow] = field(default_factory=list)

    def preview(self, limit: int = 5) -> Dict[str, Any]:
        return {
            "name": self.name,
            "header_row_index": self.header_row_index,
            "header": self.header,
            "row_count": len(self.rows),
            "preview": [_jsonable_row(r) for r in self.rows[:limit]],
        }


# ---------------------- cell helpers ----------------------
def _is_filled(v: Any) -> bool:
    if v is None:
        return False
    if isinstance(v, float) and pd.isna(v):
        return False
    if isinstance(v, str) and not v.strip():
        return False
    return True


def _jsonable(v: Any) -> Any:
    if hasattr(v, "isoformat"):
        return v.isoformat()
    return v


def _jsonable_row(row: RawRow) -> RawRow:
    return {k: _jsonable(v) for k, v in row.items()}


def _values_from_openpyxl(ws) -> List[List[Any]]:
    vals = []
    for r in ws.iter_rows(values_only=True):
        vals.append(list(r))
    return vals


# ---------------------- header detection ----------------------
def detect_header_row(
    values: List[List[Any]],
    scan_rows: int = HEADER_SCAN_ROWS,
    min_cells: int = HEADER_MIN_CELLS,
) -> int:
    for i in range(min(scan_rows, len(values))):
        row = values[i] or []
        if sum(1 for c in row if _is_filled(c)) > min_cells:
            return i
    return 0


def _header_labels(row: List[Any]) -> List[str]:
    labels: List[str] = []
    seen: Dict[str, int] = {}
    for cell in row:
        label = str(cell).strip() if _is_filled(cell) else "__EMPTY"
        if label in seen:
            seen[label] += 1
            label = f"{label}_{seen[label]}"
        else:
            seen[label] = 0
        labels.append(label)
    return labels


def _is_group_banner(cells: List[Any]) -> bool:
    filled = [c for c in cells if _is_filled(c)]
    return len(filled) == 1 and isinstance(filled[0], str) and bool(_MONTH_BANNER.match(filled[0].strip()))


def rows_from_values(
    name: str,
    values: List[List[Any]],
    scan_rows: int = HEADER_SCAN_ROWS,
    min_cells: int = HEADER_MIN_CELLS,
) -> ParsedSheet:
    """Label every row below the detected header with that header's cells."""
    if not values:
        return ParsedSheet(name=name)

    header_idx = detect_header_row(values, scan_rows=scan_rows, min_cells=min_cells)
    header = _header_labels(values[header_idx] or [])

    rows: List[RawRow] = []
    for raw in values[header_idx + 1:]:
        cells = list(raw or [])
        if not any(_is_filled(c) for c in cells):
            continue
        if _is_group_banner(cells):
            continue
        row: RawRow = {}
        for j, label in enumerate(header):
            v = cells[j] if j < len(cells) else None
            if _is_filled(v):
                row[label] = v
        rows.append(row)

    return ParsedSheet(name=name, header_row_index=header_idx, header=header, rows=rows)


# ---------------------- decoders ----------------------
def _decode_workbook(data: bytes) -> List[tuple]:
    try:
        wb = load_workbook(io.BytesIO(data), data_only=True, read_only=True)
    except Exception as e:
        raise SpreadsheetError(f"Could not open workbook: {e}") from e

    out = []
    try:
        for ws in wb.worksheets:
            try:
                out.append((ws.title, _values_from_openpyxl(ws)))
            except Exception:
                logger.warning("Sheet %r could not be read; treating it as empty", ws.title, exc_info=True)
                out.append((ws.title, []))
    finally:
        try: wb.close()
        except Exception: pass
    return out


def _decode_csv(data: bytes, filename: str) -> List[tuple]:
    name = os.path.splitext(os.path.basename(filename or ""))[0] or "Sheet1"
    try:
        df = pd.read_csv(io.BytesIO(data), header=None, dtype=str, keep_default_na=False, skip_blank_lines=False)
    except pd.errors.EmptyDataError:
        return [(name, [])]
    except Exception as e:
        raise SpreadsheetError(f"Could not read CSV: {e}") from e
    return [(name, df.values.tolist())]


def parse_spreadsheet(
    data: bytes,
    filename: str = "",
    scan_rows: int = HEADER_SCAN_ROWS,
    min_cells: int = HEADER_MIN_CELLS,
) -> List[ParsedSheet]:
    """Decode ``data`` and return its sheets in workbook order."""
    ext = os.path.splitext(filename or "")[1].lower()
    if ext and ext not in SUPPORTED_EXTENSIONS:
        raise SpreadsheetError(f"Unsupported type: {ext}")

    decoded = _decode_csv(data, filename) if ext in CSV_EXTENSIONS else _decode_workbook(data)

    sheets: List[ParsedSheet] = []
    for name, values in decoded:
        try:
            sheets.append(rows_from_values(name, values, scan_rows=scan_rows, min_cells=min_cells))
        except Exception:
            logger.warning("Sheet %r is not tabular; treating it as empty", name, exc_info=True)
            sheets.append(ParsedSheet(name=name))
    return sheets


def find_sheet(sheets: List[ParsedSheet], name: str) -> Optional[ParsedSheet]:
    for s in sheets:
        if s.name == name:
            return s
    want = (name or "").strip().lower()
    for s in sheets:
        if s.name.strip().lower() == want:
            return s
    return None
