import pytest
from datetime import datetime, timezone
from unittest.mock import Mock, MagicMock
from fastapi.testclient import TestClient

from main import app
from academy.database import get_db
from academy.auth.dependencies import get_current_user
from academy.models.user import User, UserRole
from academy.models.course import Course, Chapter
from academy.models.order import Order, OrderStatus
from academy.models.subscription import CourseSubscription, SubscriptionStatus
from academy.models.progress import Progress
from academy.models.event import Event

T0 = datetime(2024, 1, 1, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def mock_db():
    """Mock database session; query chains return the session itself"""
    db = MagicMock()
    db.query.return_value = db
    db.filter.return_value = db
    db.with_for_update.return_value = db
    db.order_by.return_value = db
    db.first.return_value = None
    db.all.return_value = []
    db.count.return_value = 0
    return db


def _mock_user(id, email, role):
    user = Mock(spec=User)
    user.id = id
    user.email = email
    user.role = role
    user.is_paid = False
    user.subscription_end_date = None
    return user


@pytest.fixture
def mock_student():
    """Mock student user"""
    return _mock_user(2, "student@test.com", UserRole.STUDENT)


@pytest.fixture
def mock_admin():
    """Mock admin user"""
    return _mock_user(3, "admin@test.com", UserRole.ADMIN)


@pytest.fixture
def client_with_student(mock_db, mock_student):
    """TestClient with student auth and mocked DB"""
    app.dependency_overrides[get_db] = lambda: mock_db
    app.dependency_overrides[get_current_user] = lambda: mock_student
    client = TestClient(app)
    yield client, mock_db, mock_student
    app.dependency_overrides.clear()


@pytest.fixture
def client_with_admin(mock_db, mock_admin):
    """TestClient with admin auth and mocked DB"""
    app.dependency_overrides[get_db] = lambda: mock_db
    app.dependency_overrides[get_current_user] = lambda: mock_admin
    client = TestClient(app)
    yield client, mock_db, mock_admin
    app.dependency_overrides.clear()


@pytest.fixture
def unauthenticated_client(mock_db):
    """TestClient with mocked DB but no auth"""
    app.dependency_overrides[get_db] = lambda: mock_db
    client = TestClient(app)
    yield client, mock_db
    app.dependency_overrides.clear()


# Unsaved model instances: real attribute access, no DB round-trips.

def make_user(id=2, is_paid=False, subscription_end_date=None):
    return User(
        id=id,
        email=f"user{id}@test.com",
        role=UserRole.STUDENT,
        is_paid=is_paid,
        subscription_end_date=subscription_end_date,
    )


def make_course(id=10, **kwargs):
    fields = dict(
        id=id,
        title="Korean for Beginners",
        is_active=True,
        price_3_months=300000,
        price_6_months=550000,
        price_12_months=1000000,
        textbook_name="Workbook 1",
        textbook_price=50000,
    )
    fields.update(kwargs)
    return Course(**fields)


def make_chapter(id=100, course_id=10, sort_order=2):
    return Chapter(id=id, course_id=course_id, title=f"Chapter {sort_order}", sort_order=sort_order)


def make_order(id=1, status=OrderStatus.PENDING_PAYMENT, **kwargs):
    fields = dict(
        id=id,
        user_id=2,
        course_id=10,
        course_name="Korean for Beginners",
        months=3,
        amount=300000,
        course_amount=300000,
        depositor_name="Nguyen Van A",
        has_textbook=False,
        textbook_amount=None,
        shipping_address=None,
        status=status,
        deposit_confirmed=False,
        deposit_confirmed_at=None,
        created_at=T0,
        paid_at=None,
        cancelled_at=None,
        delivery_status=None,
        tracking_number=None,
        tracking_carrier=None,
    )
    fields.update(kwargs)
    return Order(**fields)


def make_subscription(id=50, status=SubscriptionStatus.READY, **kwargs):
    fields = dict(
        id=id,
        user_id=2,
        course_id=10,
        approved=True,
        status=status,
        is_started=False,
        months=3,
        order_id=1,
        approved_at=T0,
        start_date=None,
        end_date=None,
        expiry_warned_at=None,
    )
    fields.update(kwargs)
    return CourseSubscription(**fields)


def make_progress(id=7, **kwargs):
    fields = dict(
        id=id,
        user_id=2,
        course_id=10,
        chapter_id=100,
        is_completed=False,
        watched_duration=0.0,
        total_duration=0.0,
        watched_percent=0,
        last_watched_at=T0,
        created_at=T0,
        updated_at=T0,
    )
    fields.update(kwargs)
    return Progress(**fields)


def logged_event_types(db):
    """Types of the Event rows passed to db.add"""
    return [call.args[0].type for call in db.add.call_args_list if isinstance(call.args[0], Event)]
