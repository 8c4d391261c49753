# adrms/services/import_service.py
"""
Sheet-by-sheet import of parsed spreadsheets.

    result = import_sheets(sheets, "FINANCIAL", ["OCT", "NOV"], identity)
    result.outcome          # "success" | "no_new_records" | "completed_with_errors"
    result.sheets           # one SheetOutcome per sheet, workbook order

Selected sheets run strictly one after another, in the order they were
selected; a sheet's bulk write finishes before the next sheet starts. A
failing sheet is reported as ``error`` and the batch carries on. Sheets that
were not selected stay ``pending`` and do not count towards the total.
"""
from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field, replace
from typing import Callable, Dict, List, Optional, Sequence

from adrms.services.auth_utils import Identity
from adrms.services.bulk_upsert import DEFAULT_CHUNK_SIZE, bulk_insert_if_absent
from adrms.services.row_mapper import KINDS, map_rows, normalize_kind
from adrms.services.sheet_parser import ParsedSheet, find_sheet

logger = logging.getLogger(__name__)

PENDING = "pending"
PROCESSING = "processing"
COMPLETED = "completed"
ERROR = "error"

OUTCOME_SUCCESS = "success"
OUTCOME_NO_NEW_RECORDS = "no_new_records"
OUTCOME_COMPLETED_WITH_ERRORS = "completed_with_errors"

Upserter = Callable[..., int]
ProgressCallback = Callable[["SheetOutcome"], None]


@dataclass(frozen=True)
class SheetOutcome:
    name: str
    status: str = PENDING
    inserted_count: int = 0
    error_message: Optional[str] = None
    rows_read: int = 0
    rows_valid: int = 0

    def to_dict(self) -> Dict:
        return asdict(self)


@dataclass(frozen=True)
class ImportResult:
    kind: str
    sheets: List[SheetOutcome] = field(default_factory=list)

    @property
    def total_inserted(self) -> int:
        return sum(s.inserted_count for s in self.sheets)

    @property
    def has_errors(self) -> bool:
        return any(s.status == ERROR for s in self.sheets)

    @property
    def outcome(self) -> str:
        if self.has_errors:
            return OUTCOME_COMPLETED_WITH_ERRORS
        if self.total_inserted > 0:
            return OUTCOME_SUCCESS
        return OUTCOME_NO_NEW_RECORDS

    @property
    def message(self) -> str:
        if self.outcome == OUTCOME_COMPLETED_WITH_ERRORS:
            failed = [s.name for s in self.sheets if s.status == ERROR]
            return (
                f"Import completed with errors. {self.total_inserted} new records imported; "
                f"failed sheets: {', '.join(failed)}"
            )
        if self.outcome == OUTCOME_SUCCESS:
            return f"Successfully imported {self.total_inserted} new records"
        return "No new records imported. All rows already exist."

    def to_dict(self) -> Dict:
        return {
            "kind": self.kind,
            "outcome": self.outcome,
            "message": self.message,
            "total_inserted": self.total_inserted,
            "sheets": [s.to_dict() for s in self.sheets],
        }


def _import_one(
    sheet: ParsedSheet,
    kind: str,
    identity: Identity,
    upserter: Upserter,
    chunk_size: int,
) -> SheetOutcome:
    records = map_rows(kind, sheet.rows)
    base = SheetOutcome(name=sheet.name, status=PROCESSING, rows_read=len(sheet.rows), rows_valid=len(records))
    inserted = upserter(
        kind,
        records,
        organization_id=identity.organization_id,
        admin_id=identity.user_id,
        chunk_size=chunk_size,
    )
    return replace(base, status=COMPLETED, inserted_count=int(inserted or 0))


def import_sheets(
    sheets: Sequence[ParsedSheet],
    kind: str,
    selected_names: Sequence[str],
    identity: Identity,
    upserter: Upserter = bulk_insert_if_absent,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    on_progress: Optional[ProgressCallback] = None,
) -> ImportResult:
    """
    Import ``selected_names`` from ``sheets`` as ``kind`` records for the
    identity's organization.

    Raises ``MissingOrganizationError`` before touching any sheet when the
    identity has no organization, and ``ValueError`` for an unknown kind.
    Sheet-level failures never raise.
    """
    identity.require_organization()
    resolved_kind = kind if kind in KINDS else normalize_kind(kind)
    if resolved_kind is None:
        raise ValueError(f"Unknown record kind: {kind!r}")

    outcomes: Dict[str, SheetOutcome] = {s.name: SheetOutcome(name=s.name) for s in sheets}

    def _emit(o: SheetOutcome) -> None:
        outcomes[o.name] = o
        if on_progress is not None:
            on_progress(o)

    # exact name first, then a case/whitespace-insensitive match
    order: List[str] = []
    resolved: Dict[str, Optional[ParsedSheet]] = {}
    for requested in selected_names:
        sheet = find_sheet(list(sheets), requested)
        name = sheet.name if sheet is not None else requested
        if name not in order:
            order.append(name)
            resolved[name] = sheet

    for name in order:
        sheet = resolved[name]
        if sheet is None:
            _emit(SheetOutcome(name=name, status=ERROR, error_message="Sheet not found in workbook"))
            continue

        _emit(SheetOutcome(name=name, status=PROCESSING, rows_read=len(sheet.rows)))
        logger.info("Importing sheet %r as %s (%d rows)", name, resolved_kind, len(sheet.rows))
        try:
            done = _import_one(sheet, resolved_kind, identity, upserter, chunk_size)
        except Exception as e:
            logger.exception("Sheet %r failed", name)
            _emit(SheetOutcome(name=name, status=ERROR, rows_read=len(sheet.rows), error_message=str(e) or type(e).__name__))
            continue

        logger.info("Sheet %r: %d of %d valid rows inserted", name, done.inserted_count, done.rows_valid)
        _emit(done)

    return ImportResult(kind=resolved_kind, sheets=list(outcomes.values()))
