from datetime import date

import pytest

from barangay_system.app import create_app
from barangay_system.config import TestingConfig
from barangay_system.extensions import db
from barangay_system.models import Household, Resident, User
from barangay_system.store import RecordStore


@pytest.fixture
def app(tmp_path):
    db_path = tmp_path / "test.sqlite"
    upload_dir = tmp_path / "uploads"

    class TestConfig(TestingConfig):
        SQLALCHEMY_DATABASE_URI = f"sqlite:///{db_path}"
        WTF_CSRF_ENABLED = False
        LOGIN_RATE_LIMIT_MAX = 3
        LOGIN_RATE_LIMIT_WINDOW_SECONDS = 60
        MAIL_SUPPRESS_SEND = True
        AUTO_CREATE_DB = True
        UPLOAD_FOLDER = str(upload_dir)
        SECURITY_HEADERS_ENABLED = False
        ERROR_REPORT_EMAIL = ""
        LOG_JSON = False

    app = create_app(TestConfig)
    return app


@pytest.fixture(autouse=True)
def _setup_db(app):
    with app.app_context():
        db.drop_all()
        db.create_all()
        yield
        db.session.remove()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def db_session(app):
    with app.app_context():
        yield db.session


@pytest.fixture
def store(db_session):
    return RecordStore(db_session)


@pytest.fixture
def make_user(db_session):
    def _make_user(username, password, role="staff", email=None):
        user = User(
            username=username,
            email=email or f"{username}@example.com",
            role=role,
        )
        user.set_password(password)
        db_session.add(user)
        db_session.commit()
        return user

    return _make_user


@pytest.fixture
def make_resident(db_session):
    def _make_resident(
        first_name="John",
        last_name="Doe",
        gender="Male",
        date_of_birth=date(1990, 1, 1),
        household=None,
        status="Active",
    ):
        resident = Resident(
            first_name=first_name,
            last_name=last_name,
            gender=gender,
            date_of_birth=date_of_birth,
            status=status,
        )
        if household is not None:
            resident.household_id = household.id
            resident.house_number = household.house_number
        db_session.add(resident)
        db_session.commit()
        return resident

    return _make_resident


@pytest.fixture
def make_household(db_session):
    def _make_household(house_number="H-1", purok="Purok 1", latitude=None, longitude=None):
        household = Household(
            house_number=house_number,
            purok=purok,
            latitude=latitude,
            longitude=longitude,
        )
        db_session.add(household)
        db_session.commit()
        return household

    return _make_household


@pytest.fixture
def login(client):
    def _login(username, password):
        return client.post(
            "/login",
            data={"username": username, "password": password},
            follow_redirects=False,
        )

    return _login
