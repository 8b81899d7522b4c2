"""
Schedule generation on item creation.

Covers the monthly and installment split rules, the single-item fallback
and atomicity of the planned-record batch.
"""

from datetime import date

import pytest

from paytrack.extensions import db
from paytrack.models import AuditLog, PaymentItem, PaymentRecord
from paytrack.repositories import ItemRepository
from paytrack.services import item_service
from paytrack.services.schedule_generator import plan_schedule, validate_plan
from paytrack.time_utils import months_between
from paytrack.validation import ValidationError


TODAY = date(2026, 1, 1)


class TestPlanSchedule:
    def test_monthly_four_equal_periods(self):
        periods = plan_schedule("monthly", 1200000, date(2026, 1, 1), date(2026, 4, 1))

        assert [p.amount_cents for p in periods] == [300000, 300000, 300000, 300000]
        assert [p.due_date for p in periods] == [
            date(2026, 1, 1), date(2026, 2, 1), date(2026, 3, 1), date(2026, 4, 1),
        ]
        assert [p.period_index for p in periods] == [1, 2, 3, 4]

    def test_installment_remainder_on_first_period(self):
        periods = plan_schedule("installment", 10000, date(2026, 1, 1), date(2026, 3, 1))
        assert [p.amount_cents for p in periods] == [3334, 3333, 3333]

    def test_monthly_rounding_residue_on_first_period(self):
        periods = plan_schedule("monthly", 20000, date(2026, 1, 1), date(2026, 3, 1))
        # 20000 / 3 = 6666.67 -> 6667 per period, first absorbs the residue
        assert [p.amount_cents for p in periods] == [6666, 6667, 6667]
        assert sum(p.amount_cents for p in periods) == 20000

    @pytest.mark.parametrize("payment_type", ["monthly", "installment"])
    @pytest.mark.parametrize("total", [1, 7, 99999, 123457, 1000001])
    def test_sum_and_count(self, payment_type, total):
        start, end = date(2026, 1, 31), date(2026, 7, 15)
        if total < months_between(start, end):
            pytest.skip("too small to spread")
        periods = plan_schedule(payment_type, total, start, end)

        assert len(periods) == months_between(start, end) == 7
        assert sum(p.amount_cents for p in periods) == total

    def test_day_clamped_to_month_end(self):
        periods = plan_schedule("monthly", 3000, date(2026, 1, 31), date(2026, 3, 31))
        assert [p.due_date for p in periods] == [date(2026, 1, 31), date(2026, 2, 28), date(2026, 3, 31)]

    def test_single_has_no_periods(self):
        assert plan_schedule("single", 5000, date(2026, 1, 1), None) == []


class TestValidatePlan:
    def test_missing_end_date_falls_back_to_single(self):
        assert validate_plan("monthly", 5000, date(2026, 1, 1), None) == "single"
        assert validate_plan("installment", 5000, date(2026, 1, 1), None) == "single"

    @pytest.mark.parametrize("total", [0, -100])
    def test_non_positive_total_rejected(self, total):
        with pytest.raises(ValidationError):
            validate_plan("single", total, date(2026, 1, 1), None)

    def test_end_not_after_start_rejected(self):
        with pytest.raises(ValidationError):
            validate_plan("monthly", 5000, date(2026, 1, 1), date(2026, 1, 1))
        with pytest.raises(ValidationError):
            validate_plan("installment", 5000, date(2026, 2, 1), date(2026, 1, 1))

    def test_unknown_type_rejected(self):
        with pytest.raises(ValidationError):
            validate_plan("weekly", 5000, date(2026, 1, 1), date(2026, 3, 1))


class TestGenerateOnCreate:
    def test_scenario_monthly_item_creates_four_records(self, db_session, make_item):
        item = make_item(
            name="Office rent",
            total_amount_cents=1200000,
            payment_type="monthly",
            start_date="2026-01-01",
            end_date="2026-04-01",
            today=TODAY,
        )

        records = ItemRepository(db_session).records_for_item(item.id, planned=True)
        assert len(records) == 4
        assert all(r.amount_cents == 300000 for r in records)
        assert [r.payment_date.month for r in records] == [1, 2, 3, 4]
        assert [r.period_index for r in records] == [1, 2, 3, 4]
        assert item.paid_amount_cents == 0
        assert item.status == "pending"

    def test_insert_audit_tagged_with_plan_type(self, db_session, make_item):
        item = make_item(payment_type="installment", start_date="2026-01-01", end_date="2026-03-01",
                         total_amount_cents=10000, today=TODAY)

        entries = db_session.query(AuditLog).filter_by(table_name="payment_items", record_id=item.id).all()
        assert len(entries) == 1
        assert entries[0].action == "INSERT"
        assert entries[0].old_values is None
        assert entries[0].new_values["total_amount_cents"] == 10000
        assert "installment" in entries[0].reason
        assert entries[0].actor == "alice"

    def test_monthly_without_end_date_created_as_single(self, db_session, make_item):
        item = make_item(payment_type="monthly", start_date="2026-01-10", today=TODAY)

        assert item.payment_type == "single"
        assert item.end_date is None
        assert db_session.query(PaymentRecord).filter_by(item_id=item.id).count() == 0
        entry = db_session.query(AuditLog).filter_by(record_id=item.id).one()
        assert "without end_date" in entry.reason

    def test_validation_failure_writes_nothing(self, db_session, make_item):
        with pytest.raises(ValidationError):
            make_item(payment_type="monthly", start_date="2026-03-01", end_date="2026-02-01")

        assert db_session.query(PaymentItem).count() == 0
        assert db_session.query(AuditLog).count() == 0

    def test_partial_batch_failure_rolls_back_everything(self, db_session, category):
        class FailingRepository(ItemRepository):
            def insert_records(self, records):
                records = list(records)
                super().insert_records(records[:2])
                raise RuntimeError("disk full")

        with pytest.raises(RuntimeError):
            item_service.create_item(
                {
                    "name": "Loan",
                    "category_id": category.id,
                    "total_amount_cents": 600000,
                    "payment_type": "installment",
                    "start_date": "2026-01-01",
                    "end_date": "2026-06-01",
                },
                today=TODAY,
                repo=FailingRepository(db.session),
            )

        assert db_session.query(PaymentItem).count() == 0
        assert db_session.query(PaymentRecord).count() == 0
        assert db_session.query(AuditLog).count() == 0
