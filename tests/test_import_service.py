import pytest

from adrms.models import FinancialRecord
from adrms.services.auth_utils import Identity, MissingOrganizationError
from adrms.services.import_service import (
    COMPLETED,
    ERROR,
    OUTCOME_COMPLETED_WITH_ERRORS,
    OUTCOME_NO_NEW_RECORDS,
    OUTCOME_SUCCESS,
    PENDING,
    PROCESSING,
    import_sheets,
)
from adrms.services.row_mapper import KIND_FINANCIAL, KIND_MEMBERSHIP
from adrms.services.sheet_parser import ParsedSheet


def _sheet(name, n, prefix=None):
    prefix = prefix or name
    return ParsedSheet(
        name=name,
        header=["RECEIPT NO", "NAME", "TOTAL (NGN)"],
        rows=[{"RECEIPT NO": f"{prefix}-{i}", "NAME": f"M{i}", "TOTAL (NGN)": 100} for i in range(n)],
    )


class FakeUpserter:
    """Counts records per call; raises for the sheet whose rows start with ``fail_prefix``."""

    def __init__(self, fail_prefix=None):
        self.fail_prefix = fail_prefix
        self.calls = []

    def __call__(self, kind, records, organization_id, admin_id, chunk_size=500):
        self.calls.append((kind, len(records), organization_id, admin_id))
        if self.fail_prefix and records and records[0]["receipt_no"].startswith(self.fail_prefix):
            raise RuntimeError("connection reset")
        return len(records)


IDENTITY = Identity(user_id=7, organization_id=3, role="STANDARD_ADMIN")


def test_partial_failure_is_isolated():
    sheets = [_sheet("S1", 2), _sheet("S2", 3), _sheet("S3", 4)]
    upserter = FakeUpserter(fail_prefix="S2")

    result = import_sheets(sheets, KIND_FINANCIAL, ["S1", "S2", "S3"], IDENTITY, upserter=upserter)

    by_name = {s.name: s for s in result.sheets}
    assert by_name["S1"].status == COMPLETED and by_name["S1"].inserted_count == 2
    assert by_name["S2"].status == ERROR and by_name["S2"].inserted_count == 0
    assert by_name["S2"].error_message == "connection reset"
    assert by_name["S3"].status == COMPLETED and by_name["S3"].inserted_count == 4
    assert result.total_inserted == 6
    assert result.outcome == OUTCOME_COMPLETED_WITH_ERRORS
    assert "S2" in result.message


def test_sheets_run_in_selection_order_and_unselected_stay_pending():
    sheets = [_sheet("A", 1), _sheet("B", 2), _sheet("C", 3)]
    upserter = FakeUpserter()
    progress = []

    result = import_sheets(
        sheets, KIND_FINANCIAL, ["C", "A", "C"], IDENTITY, upserter=upserter, on_progress=progress.append
    )

    assert [n for _, n, _, _ in upserter.calls] == [3, 1]
    assert [(o.name, o.status) for o in progress] == [
        ("C", PROCESSING), ("C", COMPLETED), ("A", PROCESSING), ("A", COMPLETED),
    ]
    assert [(s.name, s.status) for s in result.sheets] == [("A", COMPLETED), ("B", PENDING), ("C", COMPLETED)]
    assert result.total_inserted == 4
    assert result.outcome == OUTCOME_SUCCESS
    assert result.message == "Successfully imported 4 new records"


def test_all_duplicates_reports_no_new_records():
    result = import_sheets([_sheet("A", 3)], KIND_FINANCIAL, ["A"], IDENTITY, upserter=lambda *a, **k: 0)
    assert result.outcome == OUTCOME_NO_NEW_RECORDS
    assert result.sheets[0].status == COMPLETED
    assert result.sheets[0].rows_valid == 3


def test_invalid_rows_never_reach_the_upserter():
    sheet = ParsedSheet(name="A", rows=[{"CHANDA AAM": 500, "TOTAL (NGN)": 500}, {"NAME": "Real"}])
    upserter = FakeUpserter()
    result = import_sheets([sheet], KIND_FINANCIAL, ["A"], IDENTITY, upserter=upserter)
    assert upserter.calls == [(KIND_FINANCIAL, 1, 3, 7)]
    assert result.sheets[0].rows_read == 2
    assert result.sheets[0].rows_valid == 1


def test_missing_sheet_is_an_error_not_an_exception():
    result = import_sheets([_sheet("A", 1)], KIND_FINANCIAL, ["A", "Ghost"], IDENTITY, upserter=FakeUpserter())
    ghost = result.sheets[-1]
    assert ghost.name == "Ghost" and ghost.status == ERROR
    assert result.outcome == OUTCOME_COMPLETED_WITH_ERRORS


def test_selection_matches_sheet_names_loosely():
    sheets = [_sheet("OCT", 2), _sheet("Nov 2024", 1)]
    upserter = FakeUpserter()

    result = import_sheets(sheets, KIND_FINANCIAL, ["oct", " NOV 2024 ", "OCT"], IDENTITY, upserter=upserter)

    assert len(upserter.calls) == 2
    assert [(s.name, s.status) for s in result.sheets] == [("OCT", COMPLETED), ("Nov 2024", COMPLETED)]
    assert result.total_inserted == 3


def test_missing_organization_rejected_before_any_sheet():
    upserter = FakeUpserter()
    with pytest.raises(MissingOrganizationError):
        import_sheets([_sheet("A", 1)], KIND_FINANCIAL, ["A"], Identity(user_id=1, organization_id=None), upserter=upserter)
    assert upserter.calls == []


def test_unknown_kind_raises():
    with pytest.raises(ValueError):
        import_sheets([_sheet("A", 1)], "PAYROLL", ["A"], IDENTITY, upserter=FakeUpserter())


def test_kind_alias_is_resolved():
    result = import_sheets([], "tajnid", [], IDENTITY, upserter=FakeUpserter())
    assert result.kind == KIND_MEMBERSHIP
    assert result.outcome == OUTCOME_NO_NEW_RECORDS


def test_end_to_end_against_database_is_idempotent(app, orgs, users, identity):
    sheets = [_sheet("OCT", 5), _sheet("NOV", 4)]

    first = import_sheets(sheets, KIND_FINANCIAL, ["OCT", "NOV"], identity, chunk_size=2)
    second = import_sheets(sheets, KIND_FINANCIAL, ["OCT", "NOV"], identity, chunk_size=2)

    assert first.total_inserted == 9
    assert second.total_inserted == 0
    assert second.outcome == OUTCOME_NO_NEW_RECORDS
    assert FinancialRecord.query.filter_by(organization_id=identity.organization_id).count() == 9
