from datetime import date, timedelta

import pytest
from sqlalchemy.exc import IntegrityError

from carebook.core.database import SessionLocal
from carebook.core.security import UserRole
from carebook.models.appointment import Appointment, AppointmentStatus, PaymentStatus
from carebook.models.doctor import WEEKDAYS
from carebook.services.appointment_service import AppointmentService

from tests.helpers import auth_headers, future_day, load_appointment


def booking(doctor, day=None, time="10:00", **extra):
    return {
        "docId": doctor.id,
        "slotDate": (day or future_day()).isoformat(),
        "slotTime": time,
        **extra,
    }


class TestBooking:

    def test_book_appointment(self, client, patient, doctor):
        response = client.post(
            "/api/user/book-appointment",
            json=booking(doctor, symptoms="Headache"),
            headers=auth_headers(patient),
        )
        assert response.status_code == 200

        data = response.json()
        assert data["success"] is True
        assert data["message"] == "Appointment Booked"
        appointment = data["appointment"]
        assert appointment["status"] == "scheduled"
        assert appointment["payment_status"] == "pending"
        assert appointment["appointment_time"] == "10:00"
        assert appointment["consultation_fee"] == 500.0
        assert appointment["doctor"]["name"] == "Dr. Jane Smith"
        assert appointment["patient"]["email"] == patient.email

    def test_book_accepts_twelve_hour_time(self, client, patient, doctor):
        response = client.post(
            "/api/user/book-appointment",
            json=booking(doctor, time="2:30 PM"),
            headers=auth_headers(patient),
        )
        assert response.status_code == 200
        assert response.json()["appointment"]["appointment_time"] == "14:30"

    def test_slot_conflict(self, client, patient, doctor, make_user):
        other = make_user(email="other@example.com", name="Other Patient")

        first = client.post("/api/user/book-appointment", json=booking(doctor), headers=auth_headers(patient))
        assert first.status_code == 200

        second = client.post("/api/user/book-appointment", json=booking(doctor), headers=auth_headers(other))
        assert second.status_code == 409
        assert second.json() == {"success": False, "message": "Slot not available"}

    def test_patient_double_booking(self, client, patient, doctor, make_doctor):
        other_doctor = make_doctor(email="second@example.com", name="Dr. Second")

        client.post("/api/user/book-appointment", json=booking(doctor), headers=auth_headers(patient))
        response = client.post(
            "/api/user/book-appointment", json=booking(other_doctor), headers=auth_headers(patient)
        )
        assert response.status_code == 409
        assert response.json()["message"] == "You already have an appointment at this time"

    def test_cancelled_slot_can_be_rebooked(self, client, patient, doctor, make_appointment):
        make_appointment(patient, doctor, status=AppointmentStatus.CANCELLED)

        response = client.post("/api/user/book-appointment", json=booking(doctor), headers=auth_headers(patient))
        assert response.status_code == 200

    def test_book_in_the_past(self, client, patient, doctor):
        yesterday = date.today() - timedelta(days=1)

        response = client.post(
            "/api/user/book-appointment",
            json=booking(doctor, day=yesterday),
            headers=auth_headers(patient),
        )
        assert response.status_code == 400
        assert response.json()["message"] == "Cannot book an appointment in the past"

    def test_book_unavailable_doctor(self, client, patient, make_doctor):
        doctor = make_doctor(is_available=False)

        response = client.post("/api/user/book-appointment", json=booking(doctor), headers=auth_headers(patient))
        assert response.status_code == 400
        assert response.json()["message"] == "Doctor not available"

    def test_book_unknown_doctor(self, client, patient):
        response = client.post(
            "/api/user/book-appointment",
            json={"docId": 999, "slotDate": future_day().isoformat(), "slotTime": "10:00"},
            headers=auth_headers(patient),
        )
        assert response.status_code == 404
        assert response.json()["message"] == "Doctor not found"

    def test_book_on_closed_day(self, client, patient, make_doctor):
        day = future_day()
        doctor = make_doctor(working_hours={WEEKDAYS[day.weekday()]: {"closed": True}})

        response = client.post("/api/user/book-appointment", json=booking(doctor, day=day), headers=auth_headers(patient))
        assert response.status_code == 400
        assert response.json()["message"] == "Doctor is not working on this day"

    def test_book_outside_working_hours(self, client, patient, make_doctor):
        day = future_day()
        doctor = make_doctor(working_hours={WEEKDAYS[day.weekday()]: {"start": "09:00", "end": "12:00"}})

        response = client.post(
            "/api/user/book-appointment",
            json=booking(doctor, day=day, time="11:45"),
            headers=auth_headers(patient),
        )
        assert response.status_code == 400
        assert response.json()["message"] == "Selected time is outside the doctor's working hours"

    def test_book_off_grid_time(self, client, patient, doctor, make_user):
        client.post("/api/user/book-appointment", json=booking(doctor), headers=auth_headers(patient))
        other = make_user(email="other@example.com", name="Other Patient")

        response = client.post(
            "/api/user/book-appointment",
            json=booking(doctor, time="10:15"),
            headers=auth_headers(other),
        )
        assert response.status_code == 400
        assert response.json()["message"] == "Selected time is not an available slot"

    def test_concurrent_booking_of_same_slot(self, client, patient, doctor, make_user, monkeypatch):
        other = make_user(email="other@example.com", name="Other Patient")
        client.post("/api/user/book-appointment", json=booking(doctor), headers=auth_headers(patient))

        # The second request passes the lookup as if the first had not committed yet
        monkeypatch.setattr(AppointmentService, "slot_taken", lambda self, *args: False)

        response = client.post("/api/user/book-appointment", json=booking(doctor), headers=auth_headers(other))
        assert response.status_code == 409
        assert response.json()["message"] == "Slot not available"

        db = SessionLocal()
        try:
            assert db.query(Appointment).filter(Appointment.doctor_id == doctor.id).count() == 1
        finally:
            db.close()

    def test_active_slot_is_unique_in_database(self, patient, doctor, make_appointment):
        make_appointment(patient, doctor, status=AppointmentStatus.CANCELLED)
        make_appointment(patient, doctor)

        with pytest.raises(IntegrityError):
            make_appointment(patient, doctor, status=AppointmentStatus.COMPLETED)

    def test_book_validation_messages(self, client, patient, doctor):
        headers = auth_headers(patient)

        response = client.post(
            "/api/user/book-appointment",
            json={"docId": doctor.id, "slotDate": future_day().isoformat(), "slotTime": ""},
            headers=headers,
        )
        assert response.status_code == 400
        assert response.json()["message"] == "Appointment time is required"

        response = client.post(
            "/api/user/book-appointment",
            json={"slotDate": future_day().isoformat(), "slotTime": "10:00"},
            headers=headers,
        )
        assert response.status_code == 400
        assert response.json()["message"] == "Doctor ID is required"

        response = client.post(
            "/api/user/book-appointment",
            json={"docId": "abc", "slotDate": future_day().isoformat(), "slotTime": "10:00"},
            headers=headers,
        )
        assert response.status_code == 400
        assert response.json()["message"] == "Invalid doctor ID"

        response = client.post(
            "/api/user/book-appointment",
            json={"docId": doctor.id, "slotDate": "next tuesday", "slotTime": "10:00"},
            headers=headers,
        )
        assert response.status_code == 400
        assert response.json()["message"] == "Invalid date format"

    def test_only_patients_book(self, client, doctor):
        response = client.post(
            "/api/user/book-appointment", json=booking(doctor), headers=auth_headers(doctor.user)
        )
        assert response.status_code == 403

    def test_list_patient_appointments(self, client, patient, doctor, make_user, make_appointment):
        other = make_user(email="other@example.com", name="Other Patient")
        make_appointment(patient, doctor, time="10:00")
        make_appointment(other, doctor, time="10:30")

        response = client.get("/api/user/appointments", headers=auth_headers(patient))
        assert response.status_code == 200
        appointments = response.json()["appointments"]
        assert len(appointments) == 1
        assert appointments[0]["patient_id"] == patient.id


class TestCancellation:

    def test_patient_cancels(self, client, patient, doctor, make_appointment):
        appointment = make_appointment(patient, doctor)

        response = client.post(
            "/api/user/cancel-appointment",
            json={"appointmentId": appointment.id, "reason": "Feeling better"},
            headers=auth_headers(patient),
        )
        assert response.status_code == 200
        assert response.json()["message"] == "Appointment Cancelled"

        stored = load_appointment(appointment.id)
        assert stored.status == AppointmentStatus.CANCELLED
        assert stored.cancelled_by == patient.id
        assert stored.cancelled_reason == "Feeling better"
        assert stored.cancelled_at is not None

    def test_cancel_releases_slot(self, client, patient, doctor, make_user, make_appointment):
        appointment = make_appointment(patient, doctor)
        client.post(
            "/api/user/cancel-appointment",
            json={"appointmentId": appointment.id},
            headers=auth_headers(patient),
        )

        other = make_user(email="other@example.com", name="Other Patient")
        response = client.post("/api/user/book-appointment", json=booking(doctor), headers=auth_headers(other))
        assert response.status_code == 200

    def test_patient_cannot_cancel_others(self, client, patient, doctor, make_user, make_appointment):
        other = make_user(email="other@example.com", name="Other Patient")
        appointment = make_appointment(other, doctor)

        response = client.post(
            "/api/user/cancel-appointment",
            json={"appointmentId": appointment.id},
            headers=auth_headers(patient),
        )
        assert response.status_code == 403
        assert response.json()["message"] == "Unauthorized action"

    def test_doctor_cancels(self, client, patient, doctor, make_appointment):
        appointment = make_appointment(patient, doctor)

        response = client.post(
            "/api/doctor/cancel-appointment",
            json={"appointmentId": appointment.id},
            headers=auth_headers(doctor.user),
        )
        assert response.status_code == 200
        assert load_appointment(appointment.id).cancelled_by == doctor.user_id

    def test_other_doctor_cannot_cancel(self, client, patient, doctor, make_doctor, make_appointment):
        other_doctor = make_doctor(email="second@example.com", name="Dr. Second")
        appointment = make_appointment(patient, doctor)

        response = client.post(
            "/api/doctor/cancel-appointment",
            json={"appointmentId": appointment.id},
            headers=auth_headers(other_doctor.user),
        )
        assert response.status_code == 403

    def test_admin_cancels(self, client, patient, doctor, admin, make_appointment):
        appointment = make_appointment(patient, doctor)

        response = client.post(
            "/api/admin/cancel-appointment",
            json={"appointmentId": appointment.id},
            headers=auth_headers(admin),
        )
        assert response.status_code == 200
        assert load_appointment(appointment.id).status == AppointmentStatus.CANCELLED

    def test_cancel_twice(self, client, patient, doctor, make_appointment):
        appointment = make_appointment(patient, doctor, status=AppointmentStatus.CANCELLED)

        response = client.post(
            "/api/user/cancel-appointment",
            json={"appointmentId": appointment.id},
            headers=auth_headers(patient),
        )
        assert response.status_code == 400
        assert response.json()["message"] == "Appointment is already cancelled"

    def test_cancel_paid_appointment_marks_refund(self, client, patient, doctor, make_appointment):
        appointment = make_appointment(patient, doctor, payment_status=PaymentStatus.COMPLETED)

        client.post(
            "/api/user/cancel-appointment",
            json={"appointmentId": appointment.id},
            headers=auth_headers(patient),
        )
        assert load_appointment(appointment.id).payment_status == PaymentStatus.REFUNDED

    def test_cancel_unknown_appointment(self, client, patient):
        response = client.post(
            "/api/user/cancel-appointment",
            json={"appointmentId": 12345},
            headers=auth_headers(patient),
        )
        assert response.status_code == 404
        assert response.json()["message"] == "Appointment not found"


class TestDoctorActions:

    def test_complete_appointment(self, client, patient, doctor, make_appointment):
        appointment = make_appointment(patient, doctor)

        response = client.post(
            "/api/doctor/complete-appointment",
            json={"appointmentId": appointment.id, "prescription": "Rest and fluids"},
            headers=auth_headers(doctor.user),
        )
        assert response.status_code == 200

        stored = load_appointment(appointment.id)
        assert stored.status == AppointmentStatus.COMPLETED
        assert stored.prescription == "Rest and fluids"
        assert stored.completed_at is not None

    def test_complete_cancelled_appointment(self, client, patient, doctor, make_appointment):
        appointment = make_appointment(patient, doctor, status=AppointmentStatus.CANCELLED)

        response = client.post(
            "/api/doctor/complete-appointment",
            json={"appointmentId": appointment.id},
            headers=auth_headers(doctor.user),
        )
        assert response.status_code == 400

    def test_mark_no_show(self, client, patient, doctor, make_appointment):
        appointment = make_appointment(patient, doctor, day=date.today() - timedelta(days=1))

        response = client.post(
            "/api/doctor/no-show-appointment",
            json={"appointmentId": appointment.id},
            headers=auth_headers(doctor.user),
        )
        assert response.status_code == 200
        assert load_appointment(appointment.id).status == AppointmentStatus.NO_SHOW

    def test_no_show_before_start(self, client, patient, doctor, make_appointment):
        appointment = make_appointment(patient, doctor)

        response = client.post(
            "/api/doctor/no-show-appointment",
            json={"appointmentId": appointment.id},
            headers=auth_headers(doctor.user),
        )
        assert response.status_code == 400
        assert response.json()["message"] == "Appointment has not started yet"

    def test_doctor_appointments(self, client, patient, doctor, make_doctor, make_appointment):
        other_doctor = make_doctor(email="second@example.com", name="Dr. Second")
        make_appointment(patient, doctor, time="10:00")
        make_appointment(patient, other_doctor, time="11:00")

        response = client.get("/api/doctor/appointments", headers=auth_headers(doctor.user))
        assert response.status_code == 200
        appointments = response.json()["appointments"]
        assert [a["doctor_id"] for a in appointments] == [doctor.id]

    def test_patient_cannot_use_doctor_routes(self, client, patient):
        response = client.get("/api/doctor/appointments", headers=auth_headers(patient))
        assert response.status_code == 403


class TestSlots:

    def test_slots_follow_working_hours(self, client, patient, make_doctor, make_appointment):
        day = future_day()
        doctor = make_doctor(working_hours={WEEKDAYS[day.weekday()]: {"start": "10:00", "end": "12:00"}})
        make_appointment(patient, doctor, day=day, time="10:30")

        response = client.get(f"/api/doctor/{doctor.id}/slots", params={"date": day.isoformat()})
        assert response.status_code == 200
        assert response.json()["slots"] == ["10:00", "11:00", "11:30"]

    def test_default_hours(self, client, doctor):
        response = client.get(f"/api/doctor/{doctor.id}/slots", params={"date": future_day().isoformat()})
        slots = response.json()["slots"]
        assert slots[0] == "10:00"
        assert slots[-1] == "20:30"

    def test_no_slots_on_closed_day(self, client, make_doctor):
        day = future_day()
        doctor = make_doctor(working_hours={WEEKDAYS[day.weekday()]: {"closed": True}})

        response = client.get(f"/api/doctor/{doctor.id}/slots", params={"date": day.isoformat()})
        assert response.json()["slots"] == []

    def test_no_slots_in_the_past(self, client, doctor):
        yesterday = date.today() - timedelta(days=1)

        response = client.get(f"/api/doctor/{doctor.id}/slots", params={"date": yesterday.isoformat()})
        assert response.json()["slots"] == []


class TestNotifications:

    def test_booking_notifies_both_parties(self, client, patient, doctor):
        client.post("/api/user/book-appointment", json=booking(doctor), headers=auth_headers(patient))

        response = client.get("/api/user/notifications", headers=auth_headers(patient))
        assert response.status_code == 200
        data = response.json()
        assert data["unreadCount"] == 1
        assert data["notifications"][0]["title"] == "Appointment booked"

        response = client.get("/api/user/notifications", headers=auth_headers(doctor.user))
        assert response.json()["notifications"][0]["title"] == "New appointment"

    def test_mark_notifications_read(self, client, patient, doctor):
        client.post("/api/user/book-appointment", json=booking(doctor), headers=auth_headers(patient))
        headers = auth_headers(patient)
        notification_id = client.get("/api/user/notifications", headers=headers).json()["notifications"][0]["id"]

        response = client.post(f"/api/user/notifications/{notification_id}/read", headers=headers)
        assert response.status_code == 200
        assert client.get("/api/user/notifications", headers=headers).json()["unreadCount"] == 0

    def test_mark_all_read(self, client, patient, doctor, make_appointment):
        appointment = make_appointment(patient, doctor)
        client.post(
            "/api/doctor/cancel-appointment",
            json={"appointmentId": appointment.id},
            headers=auth_headers(doctor.user),
        )
        headers = auth_headers(patient)
        assert client.get("/api/user/notifications", headers=headers).json()["unreadCount"] == 1

        response = client.post("/api/user/notifications/read-all", headers=headers)
        assert response.status_code == 200
        assert client.get("/api/user/notifications", headers=headers).json()["unreadCount"] == 0

    def test_cannot_read_others_notification(self, client, patient, doctor, make_user):
        client.post("/api/user/book-appointment", json=booking(doctor), headers=auth_headers(patient))
        notification_id = client.get(
            "/api/user/notifications", headers=auth_headers(patient)
        ).json()["notifications"][0]["id"]
        other = make_user(email="other@example.com", name="Other Patient", role=UserRole.PATIENT)

        response = client.post(f"/api/user/notifications/{notification_id}/read", headers=auth_headers(other))
        assert response.status_code == 404
