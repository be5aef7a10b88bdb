from carebook.models.appointment import AppointmentStatus, PaymentStatus

from tests.helpers import auth_headers


class TestDoctorCatalogue:

    def test_list_doctors(self, client, make_doctor):
        make_doctor(email="a@example.com", name="Dr. Alice", speciality="Dermatologist")
        make_doctor(email="b@example.com", name="Dr. Bob", speciality="Neurologist", is_available=False)

        response = client.get("/api/doctor/list")
        assert response.status_code == 200
        doctors = response.json()["doctors"]
        assert [d["name"] for d in doctors] == ["Dr. Alice", "Dr. Bob"]
        assert "password_hash" not in doctors[0]

    def test_filter_by_speciality(self, client, make_doctor):
        make_doctor(email="a@example.com", name="Dr. Alice", speciality="Dermatologist")
        make_doctor(email="b@example.com", name="Dr. Bob", speciality="Neurologist")

        response = client.get("/api/doctor/list", params={"speciality": "dermatologist"})
        assert [d["name"] for d in response.json()["doctors"]] == ["Dr. Alice"]

    def test_filter_by_availability(self, client, make_doctor):
        make_doctor(email="a@example.com", name="Dr. Alice")
        make_doctor(email="b@example.com", name="Dr. Bob", is_available=False)

        response = client.get("/api/doctor/list", params={"available": "true"})
        assert [d["name"] for d in response.json()["doctors"]] == ["Dr. Alice"]

    def test_specialities(self, client, make_doctor):
        make_doctor(email="a@example.com", speciality="Neurologist")
        make_doctor(email="b@example.com", speciality="Dermatologist")
        make_doctor(email="c@example.com", speciality="Neurologist")

        response = client.get("/api/doctor/specialities")
        assert response.json()["specialities"] == ["Dermatologist", "Neurologist"]

    def test_doctor_detail(self, client, doctor):
        response = client.get(f"/api/doctor/{doctor.id}")
        assert response.status_code == 200

        data = response.json()["doctor"]
        assert data["name"] == "Dr. Jane Smith"
        assert data["email"] == "doctor@example.com"
        assert data["consultation_fee"] == 500.0
        assert data["rating"] == 0

    def test_doctor_detail_not_found(self, client, test_db):
        response = client.get("/api/doctor/999")
        assert response.status_code == 404
        assert response.json() == {"success": False, "message": "Doctor not found"}


class TestDoctorProfile:

    def test_profile(self, client, doctor):
        response = client.get("/api/doctor/profile", headers=auth_headers(doctor.user))
        assert response.status_code == 200
        assert response.json()["doctor"]["id"] == doctor.id

    def test_update_profile(self, client, doctor):
        payload = {
            "fees": 750,
            "about": "Twenty years in family practice",
            "address": {"line1": "12 Main Road", "city": "Pune"},
            "workingHours": {
                "monday": {"start": "9:00 AM", "end": "1:00 PM"},
                "sunday": {"closed": True},
            },
        }

        response = client.post("/api/doctor/update-profile", json=payload, headers=auth_headers(doctor.user))
        assert response.status_code == 200

        data = response.json()["doctor"]
        assert data["consultation_fee"] == 750.0
        assert data["office_address"]["city"] == "Pune"
        assert data["working_hours"]["monday"] == {"start": "09:00", "end": "13:00", "closed": False}
        assert data["working_hours"]["sunday"]["closed"] is True

    def test_update_profile_rejects_bad_hours(self, client, doctor):
        payload = {"workingHours": {"monday": {"start": "17:00", "end": "09:00"}}}

        response = client.post("/api/doctor/update-profile", json=payload, headers=auth_headers(doctor.user))
        assert response.status_code == 400
        assert response.json()["message"] == "Working hours start must be before end"

    def test_update_profile_rejects_unknown_day(self, client, doctor):
        payload = {"workingHours": {"funday": {"start": "09:00", "end": "17:00"}}}

        response = client.post("/api/doctor/update-profile", json=payload, headers=auth_headers(doctor.user))
        assert response.status_code == 400
        assert response.json()["message"] == "Unknown weekday: funday"

    def test_change_availability(self, client, doctor):
        response = client.post("/api/doctor/change-availability", headers=auth_headers(doctor.user))
        assert response.status_code == 200
        assert response.json()["message"] == "Availability Changed"

        detail = client.get(f"/api/doctor/{doctor.id}").json()["doctor"]
        assert detail["is_available"] is False

    def test_dashboard(self, client, patient, doctor, make_user, make_appointment):
        other = make_user(email="other@example.com", name="Other Patient")
        make_appointment(patient, doctor, time="10:00", status=AppointmentStatus.COMPLETED)
        make_appointment(patient, doctor, time="11:00", payment_status=PaymentStatus.COMPLETED)
        make_appointment(other, doctor, time="12:00")

        response = client.get("/api/doctor/dashboard", headers=auth_headers(doctor.user))
        assert response.status_code == 200

        dash = response.json()["dashData"]
        assert dash["earnings"] == 1000.0
        assert dash["appointments"] == 3
        assert dash["patients"] == 2
        assert len(dash["latestAppointments"]) == 3


class TestReviews:

    def test_review_completed_appointment(self, client, patient, doctor, make_appointment):
        appointment = make_appointment(patient, doctor, status=AppointmentStatus.COMPLETED)

        response = client.post(
            "/api/user/reviews",
            json={"appointmentId": appointment.id, "rating": 4, "reviewText": "Very thorough"},
            headers=auth_headers(patient),
        )
        assert response.status_code == 200
        assert response.json()["review"]["rating"] == 4

        detail = client.get(f"/api/doctor/{doctor.id}").json()["doctor"]
        assert detail["rating"] == 4.0
        assert detail["total_reviews"] == 1

        reviews = client.get(f"/api/doctor/{doctor.id}/reviews").json()["reviews"]
        assert [r["review_text"] for r in reviews] == ["Very thorough"]

    def test_rating_is_averaged(self, client, patient, doctor, make_appointment):
        first = make_appointment(patient, doctor, time="10:00", status=AppointmentStatus.COMPLETED)
        second = make_appointment(patient, doctor, time="11:00", status=AppointmentStatus.COMPLETED)
        headers = auth_headers(patient)

        client.post("/api/user/reviews", json={"appointmentId": first.id, "rating": 5}, headers=headers)
        client.post("/api/user/reviews", json={"appointmentId": second.id, "rating": 2}, headers=headers)

        detail = client.get(f"/api/doctor/{doctor.id}").json()["doctor"]
        assert detail["rating"] == 3.5
        assert detail["total_reviews"] == 2

    def test_review_requires_completed_appointment(self, client, patient, doctor, make_appointment):
        appointment = make_appointment(patient, doctor)

        response = client.post(
            "/api/user/reviews",
            json={"appointmentId": appointment.id, "rating": 5},
            headers=auth_headers(patient),
        )
        assert response.status_code == 400
        assert response.json()["message"] == "Only completed appointments can be reviewed"

    def test_review_once(self, client, patient, doctor, make_appointment):
        appointment = make_appointment(patient, doctor, status=AppointmentStatus.COMPLETED)
        headers = auth_headers(patient)

        client.post("/api/user/reviews", json={"appointmentId": appointment.id, "rating": 5}, headers=headers)
        response = client.post("/api/user/reviews", json={"appointmentId": appointment.id, "rating": 1}, headers=headers)
        assert response.status_code == 409

    def test_rating_range(self, client, patient, doctor, make_appointment):
        appointment = make_appointment(patient, doctor, status=AppointmentStatus.COMPLETED)

        response = client.post(
            "/api/user/reviews",
            json={"appointmentId": appointment.id, "rating": 6},
            headers=auth_headers(patient),
        )
        assert response.status_code == 400
        assert response.json()["message"] == "Rating must be between 1 and 5"
