"""
Pytest fixtures for paytrack backend tests.

Provides test database setup, scope fixtures (categories, projects) and test client.
"""

from datetime import date

import pytest
from paytrack import create_app
from paytrack.extensions import db
from paytrack.models import (
    DebtCategory,
    FixedCategorySubOption,
    FixedExpenseCategory,
    PaymentProject,
)
from paytrack.services import item_service


# Business date used by service-level tests.
TODAY = date(2026, 3, 15)


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'PAYTRACK_DEFAULT_ACTOR': 'test-suite',
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def category(db_session):
    """Flexible category 'Contractors'."""
    cat = DebtCategory(name="Contractors", category_type="project")
    db_session.add(cat)
    db_session.commit()
    return cat


@pytest.fixture(scope='function')
def other_category(db_session):
    """Flexible category 'Household'."""
    cat = DebtCategory(name="Household", category_type="household")
    db_session.add(cat)
    db_session.commit()
    return cat


@pytest.fixture(scope='function')
def project(db_session):
    """Project 'Harbor Street renovation'."""
    proj = PaymentProject(name="Harbor Street renovation", project_type="renovation")
    db_session.add(proj)
    db_session.commit()
    return proj


@pytest.fixture(scope='function')
def fixed_sub_option(db_session, project):
    """Fixed category 'Utilities' with sub-option 'Electricity'."""
    fixed = FixedExpenseCategory(name="Utilities")
    db_session.add(fixed)
    db_session.flush()
    sub = FixedCategorySubOption(fixed_category_id=fixed.id, project_id=project.id, name="Electricity")
    db_session.add(sub)
    db_session.commit()
    return sub


@pytest.fixture(scope='function')
def make_item(db_session, category):
    """Factory creating items through item_service with sensible defaults."""
    def _make(**overrides):
        payload = {
            "name": "Invoice",
            "category_id": category.id,
            "total_amount_cents": 100000,
            "payment_type": "single",
            "start_date": "2026-03-20",
        }
        payload.update(overrides)
        today = payload.pop("today", TODAY)
        actor = payload.pop("actor", "alice")
        return item_service.create_item(payload, actor=actor, today=today)

    return _make
