from datetime import date

import pytest

from adrms.models import FinancialRecord, MembershipRecord
from adrms.services.bulk_upsert import (
    bulk_insert_if_absent,
    financial_natural_key,
    membership_natural_key,
)
from adrms.services.row_mapper import KIND_FINANCIAL, KIND_MEMBERSHIP, map_financial_row, map_membership_row


def _fin(**raw):
    return map_financial_row(raw)


def test_financial_key_prefers_receipt():
    assert financial_natural_key({"receipt_no": " R1 ", "chanda_number": "C1"}) == "receipt:R1"


def test_financial_key_composite_fallback():
    rec = {"chanda_number": "C1", "month_paid_for": "JAN2024", "date": date(2024, 1, 15), "total_ngn": 1500}
    assert financial_natural_key(rec) == "composite:C1|JAN2024|2024-01-15|1500.00"
    assert financial_natural_key({**rec, "date": None}) == "composite:C1|JAN2024||1500.00"


def test_membership_key_variants():
    assert membership_natural_key({"chanda_no": "CH1", "surname": "A"}) == "chanda:CH1"
    assert membership_natural_key({"surname": "Bello", "other_names": "Yusuf"}) == "name:Bello|Yusuf"
    assert membership_natural_key({"surname": "Bello", "other_names": "Yusuf", "phone": "080"}) == "name:Bello|Yusuf|080"


def test_reimport_is_idempotent(app, orgs, users):
    org = orgs[0]
    records = [_fin(**{"RECEIPT NO": f"R{i}", "NAME": f"M{i}", "TOTAL (NGN)": i}) for i in range(120)]

    first = bulk_insert_if_absent(KIND_FINANCIAL, records, org.id, users[0].id, chunk_size=50)
    second = bulk_insert_if_absent(KIND_FINANCIAL, records, org.id, users[0].id, chunk_size=50)

    assert first == 120
    assert second == 0
    assert FinancialRecord.query.filter_by(organization_id=org.id).count() == 120


def test_same_receipt_upserts_once_without_clobbering(app, orgs, users):
    org = orgs[0]
    a = _fin(**{"RECEIPT NO": "R1", "NAME": "First", "TOTAL (NGN)": 100})
    b = _fin(**{"RECEIPT NO": "R1", "NAME": "Second", "TOTAL (NGN)": 999})

    assert bulk_insert_if_absent(KIND_FINANCIAL, [a, b], org.id, users[0].id) == 1
    stored = FinancialRecord.query.filter_by(organization_id=org.id).one()
    assert stored.name == "First"
    assert stored.total_ngn == 100


def test_composite_key_used_without_receipt(app, orgs, users):
    org = orgs[0]
    base = {"CHANDA NO": "C7", "NAME": "X", "MONTH PAID FOR": "jan2024", "DATE": "15/01/2024", "TOTAL (NGN)": 500}
    rows = [_fin(**base), _fin(**base), _fin(**{**base, "TOTAL (NGN)": 600})]

    assert bulk_insert_if_absent(KIND_FINANCIAL, rows, org.id, users[0].id) == 2


def test_organizations_do_not_share_keys(app, orgs, users):
    a, b = orgs
    rec = [_fin(**{"RECEIPT NO": "R1", "NAME": "Shared"})]
    assert bulk_insert_if_absent(KIND_FINANCIAL, rec, a.id, users[0].id) == 1
    assert bulk_insert_if_absent(KIND_FINANCIAL, rec, b.id, users[1].id) == 1


def test_membership_insert_and_unknown_fields_ignored(app, orgs, users):
    org = orgs[0]
    rec = map_membership_row({"SURNAME": "Bello", "OTHER NAMES": "Yusuf", "PHONE": "080"})
    rec["not_a_column"] = "ignored"
    assert bulk_insert_if_absent(KIND_MEMBERSHIP, [rec], org.id, users[0].id) == 1
    stored = MembershipRecord.query.one()
    assert stored.natural_key == "name:Bello|Yusuf|080"
    assert stored.admin_id == users[0].id


def test_empty_batch_is_a_no_op(app, orgs, users):
    assert bulk_insert_if_absent(KIND_FINANCIAL, [], orgs[0].id, users[0].id) == 0


def test_failed_write_rolls_back_whole_sheet(app, orgs, users):
    good = _fin(**{"RECEIPT NO": "R1", "NAME": "ok"})
    with pytest.raises(Exception):
        # organization_id is NOT NULL, so the first statement fails
        bulk_insert_if_absent(KIND_FINANCIAL, [good], None, users[0].id)
    assert FinancialRecord.query.count() == 0
