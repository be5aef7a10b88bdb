import os

import fakeredis
import pytest
from fastapi.testclient import TestClient

# Set testing environment before the app reads its settings
os.environ["TESTING"] = "1"
os.environ["TEST_DATABASE_URL"] = "sqlite:///./test.db"

from carebook.main import app
from carebook.core.database import Base, SessionLocal, engine, get_redis
from carebook.core.security import UserRole, get_password_hash
from carebook.models.appointment import Appointment, AppointmentStatus, PaymentStatus
from carebook.models.doctor import Doctor
from carebook.models.user import User
from carebook.services.storage_service import LocalImageStorage, get_image_storage

from tests.helpers import TEST_PASSWORD, future_day


@pytest.fixture(scope="function")
def test_db():
    # Create tables
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def redis_client():
    return fakeredis.FakeRedis(decode_responses=True)


@pytest.fixture
def upload_dir(tmp_path):
    return tmp_path / "uploads"


@pytest.fixture
def client(test_db, redis_client, upload_dir):
    app.dependency_overrides[get_redis] = lambda: redis_client
    app.dependency_overrides[get_image_storage] = lambda: LocalImageStorage(str(upload_dir), "/uploads")
    with TestClient(app, base_url="http://testserver") as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(test_db):
    """Insert a user directly, bypassing the rate-limited auth routes."""
    def _make_user(
        email="patient@example.com",
        role=UserRole.PATIENT,
        name="Test Patient",
        password=TEST_PASSWORD,
        is_active=True,
    ):
        db = SessionLocal()
        try:
            user = User(
                email=email,
                password_hash=get_password_hash(password),
                full_name=name,
                role=role,
                is_active=is_active,
                is_verified=True,
            )
            db.add(user)
            db.commit()
            db.refresh(user)
            return user
        finally:
            db.close()

    return _make_user


@pytest.fixture
def make_doctor(make_user):
    def _make_doctor(
        email="doctor@example.com",
        name="Dr. Jane Smith",
        speciality="General physician",
        fees=500.0,
        working_hours=None,
        is_available=True,
    ):
        user = make_user(email=email, role=UserRole.DOCTOR, name=name)
        db = SessionLocal()
        try:
            doctor = Doctor(
                user_id=user.id,
                speciality=speciality,
                degree="MBBS",
                experience_years=5,
                about="Family medicine",
                consultation_fee=fees,
                working_hours=working_hours,
                is_available=is_available,
            )
            db.add(doctor)
            db.commit()
            db.refresh(doctor)
            doctor.user  # loaded before the session closes
            return doctor
        finally:
            db.close()

    return _make_doctor


@pytest.fixture
def make_appointment(test_db):
    def _make_appointment(
        patient,
        doctor,
        day=None,
        time="10:00",
        status=AppointmentStatus.SCHEDULED,
        payment_status=PaymentStatus.PENDING,
    ):
        db = SessionLocal()
        try:
            appointment = Appointment(
                patient_id=patient.id,
                doctor_id=doctor.id,
                appointment_date=day or future_day(),
                appointment_time=time,
                duration_minutes=30,
                consultation_fee=doctor.consultation_fee,
                status=status,
                payment_status=payment_status,
            )
            db.add(appointment)
            db.commit()
            db.refresh(appointment)
            return appointment
        finally:
            db.close()

    return _make_appointment


@pytest.fixture
def patient(make_user):
    return make_user()


@pytest.fixture
def doctor(make_doctor):
    return make_doctor()


@pytest.fixture
def admin(make_user):
    return make_user(email="admin@example.com", role=UserRole.ADMIN, name="Administrator")

