from datetime import date, timedelta

from carebook.core.database import SessionLocal
from carebook.core.security import create_token_pair
from carebook.models.appointment import Appointment

TEST_PASSWORD = "TestPassword123"


def future_day(days: int = 7) -> date:
    return date.today() + timedelta(days=days)


def auth_headers(user) -> dict:
    tokens = create_token_pair(user.id, user.email, user.role)
    return {"Authorization": f"Bearer {tokens.access_token}"}


def load_appointment(appointment_id: int) -> Appointment:
    db = SessionLocal()
    try:
        return db.query(Appointment).filter(Appointment.id == appointment_id).first()
    finally:
        db.close()
