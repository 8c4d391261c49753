from datetime import date, datetime
from io import BytesIO

import pytest
from openpyxl import load_workbook

from adrms.models import FUND_FIELDS
from adrms.services.bulk_upsert import bulk_insert_if_absent
from adrms.services.export_service import build_workbook, export_records, shape_export
from adrms.services.import_service import import_sheets
from adrms.services.row_mapper import FINANCIAL_COLUMNS, KIND_FINANCIAL, KIND_MEMBERSHIP, map_rows
from adrms.services.sheet_parser import parse_spreadsheet


def _fin(receipt, d, total=100.0, **extra):
    rec = {f: 0.0 for f in FUND_FIELDS}
    rec.update(
        receipt_no=receipt, chanda_number="C" + receipt, name="N" + receipt,
        month_paid_for="jan2024,feb2024", date=d, total_ngn=total,
    )
    rec.update(extra)
    return rec


def test_groups_by_month_in_chronological_order():
    records = [
        _fin("3", date(2024, 2, 1)),
        _fin("1", date(2024, 1, 15)),
        _fin("2", date(2024, 1, 20)),
    ]
    table = shape_export(KIND_FINANCIAL, records)
    first = table.columns[0]

    assert [r.get(first) for r in table.rows] == ["JANUARY 2024", "1", "2", None, "FEBRUARY 2024", "3"]
    assert table.rows[3] == {}
    assert table.group_rows == [0, 4]
    assert table.data_row_count == 3


def test_financial_row_formatting():
    rec = _fin("1", date(2024, 1, 15), total=1500.0, chanda_aam=1500.0)
    row = shape_export(KIND_FINANCIAL, [rec]).rows[1]

    assert row["DATE"] == "15/01/2024"
    assert row["MONTH PAID FOR"] == "JAN2024, FEB2024"
    assert row["CHANDA AAM"] == 1500.0
    assert row["JALSA SALANA"] is None
    assert row["TOTAL (NGN)"] == 1500.0
    assert "id" not in row and "organization_id" not in row
    assert list(row) == [c.label for c in FINANCIAL_COLUMNS]


def test_missing_date_falls_back_to_created_at_then_no_date_group():
    records = [
        _fin("late", None),
        _fin("created", None, created_at=datetime(2023, 12, 5, 9, 0)),
        _fin("dated", date(2024, 3, 1)),
    ]
    first = FINANCIAL_COLUMNS[0].label
    labels = [r.get(first) for r in shape_export(KIND_FINANCIAL, records).rows]
    assert labels == ["DECEMBER 2023", "created", None, "MARCH 2024", "dated", None, "NO DATE", "late"]


def test_projection_keeps_canonical_order():
    table = shape_export(KIND_FINANCIAL, [_fin("1", date(2024, 1, 1))], columns=["total (ngn)", "name", "RECEIPT NO"])
    assert table.columns == ["RECEIPT NO", "NAME", "TOTAL (NGN)"]
    assert table.rows[0] == {"RECEIPT NO": "JANUARY 2024"}
    assert table.rows[1] == {"RECEIPT NO": "1", "NAME": "N1", "TOTAL (NGN)": 100.0}


def test_projection_of_unknown_columns_is_rejected():
    with pytest.raises(ValueError):
        shape_export(KIND_FINANCIAL, [], columns=["nope"])


def test_membership_groups_by_creation_month():
    records = [
        {"surname": "B", "other_names": "Y", "created_at": datetime(2024, 5, 2)},
        {"surname": "A", "other_names": "X", "created_at": datetime(2024, 4, 30), "date_of_birth": date(1990, 2, 1)},
    ]
    table = shape_export(KIND_MEMBERSHIP, records, columns=["SURNAME", "DATE OF BIRTH"])
    assert [r.get("SURNAME") for r in table.rows] == ["APRIL 2024", "A", None, "MAY 2024", "B"]
    assert table.rows[1]["DATE OF BIRTH"] == "01/02/1990"


def test_workbook_formatting():
    table = shape_export(KIND_FINANCIAL, [_fin("1", date(2024, 1, 15), total=2500.0)])
    wb = load_workbook(BytesIO(build_workbook(table)))
    ws = wb["Financial Records"]

    assert ws.cell(row=1, column=1).value == "RECEIPT NO"
    assert ws.cell(row=1, column=1).font.bold
    assert ws.cell(row=2, column=1).value == "JANUARY 2024"
    assert ws.cell(row=2, column=1).font.bold
    total_col = table.columns.index("TOTAL (NGN)") + 1
    assert ws.cell(row=3, column=total_col).value == 2500.0
    assert ws.cell(row=3, column=total_col).number_format == "#,##0.00"


def test_exported_workbook_reimports_to_equal_records(app, orgs, users, identity):
    source = [
        {
            "RECEIPT NO": "R1", "CHANDA NO": "C1", "NAME": "Ahmad", "MONTH PAID FOR": "JAN2024",
            "CHANDA AAM": 1000, "TABLIGH": 250, "TOTAL (NGN)": 1250, "DATE": "15/01/2024",
        },
        {
            "RECEIPT NO": "R2", "CHANDA NO": "C2", "NAME": "Bello", "MONTH PAID FOR": "feb2024, mar2024",
            "Moaque Donation": 300, "TOTAL (NGN)": 300, "DATE": "02/02/2024",
        },
    ]
    originals = map_rows(KIND_FINANCIAL, source)
    bulk_insert_if_absent(KIND_FINANCIAL, originals, identity.organization_id, identity.user_id)

    data = build_workbook(export_records(KIND_FINANCIAL, identity))
    sheets = parse_spreadsheet(data, filename="export.xlsx")
    reimported = map_rows(KIND_FINANCIAL, sheets[0].rows)

    assert sheets[0].header_row_index == 0
    assert reimported == originals

    again = import_sheets(sheets, KIND_FINANCIAL, [sheets[0].name], identity)
    assert again.total_inserted == 0


def test_export_is_scoped_and_filtered(app, orgs, users, identity, other_identity):
    mine = map_rows(KIND_FINANCIAL, [
        {"RECEIPT NO": "A1", "NAME": "Jan payer", "MONTH PAID FOR": "JAN2024", "DATE": "10/01/2024"},
        {"RECEIPT NO": "A2", "NAME": "Feb payer", "MONTH PAID FOR": "FEB2024", "DATE": "10/02/2024"},
    ])
    theirs = map_rows(KIND_FINANCIAL, [{"RECEIPT NO": "B1", "NAME": "Other org", "MONTH PAID FOR": "JAN2024"}])
    bulk_insert_if_absent(KIND_FINANCIAL, mine, identity.organization_id, identity.user_id)
    bulk_insert_if_absent(KIND_FINANCIAL, theirs, other_identity.organization_id, other_identity.user_id)

    everything = export_records(KIND_FINANCIAL, identity, columns=["NAME"])
    assert [r.get("NAME") for r in everything.rows if r] == ["JANUARY 2024", "Jan payer", "FEBRUARY 2024", "Feb payer"]

    january = export_records(KIND_FINANCIAL, identity, month="January", year="2024", columns=["NAME"])
    assert [r.get("NAME") for r in january.rows] == ["JANUARY 2024", "Jan payer"]
