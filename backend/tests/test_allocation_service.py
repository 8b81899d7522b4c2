"""
Waterfall allocation across a scope.
"""

import threading
import time
from datetime import date

import pytest
from sqlalchemy.orm.exc import StaleDataError

from paytrack import create_app
from paytrack.extensions import db
from paytrack.models import AuditLog, DebtCategory, FlexibleCategory, PaymentItem, PaymentProject, PaymentRecord
from paytrack.repositories import ItemRepository, ItemScope
from paytrack.services import allocation_service, item_service
from paytrack.services.concurrency import _scope_locks, atomic, scope_lock
from paytrack.validation import ConflictError, ValidationError


TODAY = date(2026, 3, 15)


def _scope(category):
    return ItemScope(category=FlexibleCategory(category.id))


class TestScenario:
    def test_overdue_item_filled_before_item_due_today(self, db_session, category, make_item):
        a = make_item(name="A", total_amount_cents=200000, start_date="2026-02-01")
        b = make_item(name="B", total_amount_cents=400000, start_date="2026-03-15")
        assert a.status == "overdue"
        assert b.status == "pending"

        result = allocation_service.allocate(_scope(category), 500000, actor="alice", today=TODAY)

        assert [(l.item_id, l.allocated_cents, l.is_fully_paid) for l in result.lines] == [
            (a.id, 200000, True),
            (b.id, 300000, False),
        ]
        assert result.leftover_cents == 0

        a = db_session.get(PaymentItem, a.id)
        b = db_session.get(PaymentItem, b.id)
        assert (a.paid_amount_cents, a.status) == (200000, "paid")
        assert (b.paid_amount_cents, b.status, b.owed_cents) == (300000, "partial", 100000)


class TestOrdering:
    def test_tiers_then_start_date(self, db_session, category, make_item):
        future = make_item(name="future", start_date="2026-05-01")
        in_progress = make_item(name="in progress", payment_type="monthly",
                                start_date="2026-03-01", end_date="2026-06-01",
                                total_amount_cents=400000)
        overdue_late = make_item(name="overdue late", start_date="2026-03-01")
        overdue_early = make_item(name="overdue early", start_date="2026-01-10")

        items = db_session.query(PaymentItem).all()
        ordered = allocation_service.order_by_urgency(items, TODAY)

        assert [i.id for i in ordered] == [overdue_early.id, overdue_late.id, in_progress.id, future.id]

    def test_priority_breaks_ties_on_equal_dates(self, db_session, category, make_item):
        low = make_item(name="low", start_date="2026-04-01", priority=1)
        high = make_item(name="high", start_date="2026-04-01", priority=5)

        result = allocation_service.allocate(_scope(category), 150000, today=TODAY)

        assert [l.item_id for l in result.lines] == [high.id, low.id]
        assert [l.allocated_cents for l in result.lines] == [100000, 50000]


class TestGuarantees:
    def test_leftover_returned_when_scope_exhausted(self, db_session, category, make_item):
        make_item(total_amount_cents=30000)
        make_item(total_amount_cents=20000)

        result = allocation_service.allocate(_scope(category), 80000, today=TODAY)

        assert result.allocated_cents == 50000
        assert result.leftover_cents == 30000
        assert result.allocated_cents + result.leftover_cents == 80000
        assert db_session.query(PaymentItem).count() == 2

    def test_repeat_allocations_never_exceed_totals(self, db_session, category, make_item):
        make_item(total_amount_cents=30000)
        make_item(total_amount_cents=45000)

        first = allocation_service.allocate(_scope(category), 60000, today=TODAY)
        second = allocation_service.allocate(_scope(category), 60000, today=TODAY)
        third = allocation_service.allocate(_scope(category), 10000, today=TODAY)

        assert first.leftover_cents == 0
        assert second.allocated_cents == 15000
        assert second.leftover_cents == 45000
        assert third.lines == []
        assert third.leftover_cents == 10000
        for item in db_session.query(PaymentItem).all():
            assert 0 <= item.paid_amount_cents <= item.total_amount_cents
            assert item.status == "paid"

    def test_other_scopes_untouched(self, db_session, category, other_category, make_item):
        mine = make_item(total_amount_cents=10000)
        theirs = make_item(total_amount_cents=10000, category_id=other_category.id)

        allocation_service.allocate(_scope(category), 50000, today=TODAY)

        assert db_session.get(PaymentItem, mine.id).status == "paid"
        assert db_session.get(PaymentItem, theirs.id).paid_amount_cents == 0

    def test_deleted_items_skipped(self, db_session, category, make_item):
        gone = make_item(total_amount_cents=10000, start_date="2026-01-01")
        item_service.soft_delete_item(gone.id, actor="alice")
        kept = make_item(total_amount_cents=10000)

        result = allocation_service.allocate(_scope(category), 10000, today=TODAY)

        assert [l.item_id for l in result.lines] == [kept.id]

    def test_records_and_audit_written_per_line(self, db_session, category, project, make_item):
        item = make_item(total_amount_cents=10000, project_id=project.id)

        result = allocation_service.allocate(
            ItemScope(project_id=project.id), 4000, actor="bob", today=TODAY,
            payment_date=date(2026, 3, 10),
        )

        assert result.method == "unified_payment"
        record = db_session.query(PaymentRecord).filter_by(item_id=item.id, is_planned=False).one()
        assert record.amount_cents == 4000
        assert record.method == "unified_payment"
        assert record.payment_date == date(2026, 3, 10)

        entry = (
            db_session.query(AuditLog)
            .filter_by(record_id=item.id, action="UPDATE")
            .one()
        )
        assert entry.old_values == {"paid_amount_cents": 0, "status": "pending"}
        assert entry.new_values == {"paid_amount_cents": 4000, "status": "partial"}
        assert entry.changed_fields == ["paid_amount_cents", "status"]
        assert entry.actor == "bob"

    def test_category_scope_tagged_subcategory_allocation(self, db_session, category, make_item):
        item = make_item(total_amount_cents=10000)
        allocation_service.allocate(_scope(category), 10000, today=TODAY)
        record = db_session.query(PaymentRecord).filter_by(item_id=item.id).one()
        assert record.method == "subcategory_allocation"

    def test_partial_fill_of_late_item_keeps_it_overdue(self, db_session, category, make_item):
        item = make_item(total_amount_cents=200000, start_date="2026-02-01")
        assert item.status == "overdue"

        allocation_service.allocate(_scope(category), 50000, today=TODAY)

        entry = db_session.query(AuditLog).filter_by(record_id=item.id, action="UPDATE").one()
        assert entry.new_values == {"paid_amount_cents": 50000, "status": "overdue"}
        assert entry.changed_fields == ["paid_amount_cents"]


class TestValidation:
    def test_empty_scope_rejected(self, db_session):
        with pytest.raises(ValidationError):
            allocation_service.allocate(ItemScope(), 1000, today=TODAY)

    @pytest.mark.parametrize("amount", [0, -5, 10.5, True, "100"])
    def test_bad_amount_rejected(self, db_session, category, amount):
        with pytest.raises(ValidationError):
            allocation_service.allocate(_scope(category), amount, today=TODAY)


class TestScopeLock:
    def test_same_scope_serialized(self):
        active = []
        overlaps = []

        def worker():
            with scope_lock("flex:1"):
                active.append(1)
                if len(active) > 1:
                    overlaps.append(True)
                time.sleep(0.01)
                active.pop()

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert overlaps == []

    def test_different_scopes_do_not_block(self):
        entered = threading.Event()

        def other_scope():
            with scope_lock("flex:2"):
                entered.set()

        with scope_lock("flex:1"):
            t = threading.Thread(target=other_scope)
            t.start()
            assert entered.wait(timeout=2)
            t.join()

    def test_lock_entries_evicted_after_release(self):
        def worker(key):
            with scope_lock(key):
                time.sleep(0.005)

        threads = [threading.Thread(target=worker, args=(f"flex:{n % 3}",)) for n in range(12)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert _scope_locks == {}

    def test_lock_entry_evicted_when_body_raises(self):
        with pytest.raises(RuntimeError):
            with scope_lock("project:7"):
                assert "project:7" in _scope_locks
                raise RuntimeError("boom")
        assert "project:7" not in _scope_locks
        with scope_lock("project:7"):
            pass


class TestAtomic:
    def test_stale_write_surfaces_as_conflict(self, db_session, make_item):
        item = make_item(name="Before")
        with pytest.raises(ConflictError):
            with atomic(db_session):
                item.name = "After"
                db_session.flush()
                raise StaleDataError("version mismatch")
        assert db_session.query(PaymentItem).filter_by(id=item.id).one().name == "Before"

    def test_other_errors_propagate_unchanged(self, db_session):
        with pytest.raises(ValidationError):
            with atomic(db_session):
                raise ValidationError("bad input")


class _BarrierRepository(ItemRepository):
    """Holds each allocation after its read until both have read the same rows."""

    def __init__(self, session, barrier):
        super().__init__(session)
        self.barrier = barrier

    def lock_items_in_scope(self, scope):
        items = super().lock_items_in_scope(scope)
        self.barrier.wait(timeout=10)
        return items


@pytest.fixture
def file_app(tmp_path):
    """App on a file-backed SQLite store so threads share one real database."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': f"sqlite:///{tmp_path / 'allocations.db'}",
        'SQLALCHEMY_ENGINE_OPTIONS': {"connect_args": {"check_same_thread": False, "timeout": 30}},
        'PAYTRACK_DEFAULT_ACTOR': 'test-suite',
    })
    with app.app_context():
        db.create_all()
    yield app
    with app.app_context():
        db.drop_all()
        db.engine.dispose()


class TestConcurrentAllocations:
    def _seed(self, app):
        with app.app_context():
            cat = DebtCategory(name="Contractors", category_type="project")
            proj = PaymentProject(name="Harbor Street renovation", project_type="renovation")
            db.session.add_all([cat, proj])
            db.session.commit()
            item = item_service.create_item(
                {
                    "name": "Roofer",
                    "category_id": cat.id,
                    "project_id": proj.id,
                    "total_amount_cents": 100000,
                    "start_date": "2026-03-20",
                },
                today=TODAY,
            )
            return item.id, ItemScope(category=FlexibleCategory(cat.id)), ItemScope(project_id=proj.id)

    def _race(self, app, scopes, make_repo):
        allocated, conflicts, failures = [], [], []

        def worker(scope):
            with app.app_context():
                try:
                    result = allocation_service.allocate(
                        scope, 100000, actor="race", today=TODAY, repo=make_repo(db.session),
                    )
                    allocated.append(result.allocated_cents)
                except ConflictError as e:
                    conflicts.append(e)
                except Exception as e:
                    failures.append(e)

        threads = [threading.Thread(target=worker, args=(scope,)) for scope in scopes]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=60)
        assert failures == []
        return allocated, conflicts

    def _assert_paid_once(self, app, item_id):
        with app.app_context():
            item = db.session.get(PaymentItem, item_id)
            assert item.paid_amount_cents == 100000
            assert item.status == "paid"
            records = db.session.query(PaymentRecord).filter_by(item_id=item_id, is_planned=False).all()
            assert sum(r.amount_cents for r in records) == 100000
            assert db.session.query(AuditLog).filter_by(record_id=item_id, action="UPDATE").count() == 1

    def test_same_scope_second_waterfall_finds_nothing_owed(self, file_app):
        item_id, category_scope, _ = self._seed(file_app)

        allocated, conflicts = self._race(
            file_app, [category_scope, category_scope], lambda session: ItemRepository(session),
        )

        assert sorted(allocated) == [0, 100000]
        assert conflicts == []
        self._assert_paid_once(file_app, item_id)

    def test_overlapping_scopes_loser_gets_conflict(self, file_app):
        item_id, category_scope, project_scope = self._seed(file_app)
        barrier = threading.Barrier(2)

        allocated, conflicts = self._race(
            file_app, [category_scope, project_scope], lambda session: _BarrierRepository(session, barrier),
        )

        assert allocated == [100000]
        assert len(conflicts) == 1
        self._assert_paid_once(file_app, item_id)
