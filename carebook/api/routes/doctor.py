from datetime import date
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import Optional

from ...core.database import get_db
from ...core.security import UserRole
from ...api.deps import get_current_doctor, get_doctor_user, auth_rate_limit
from ...models.doctor import Doctor
from ...models.user import User
from ...schemas.appointment import (
    AppointmentAction, AppointmentCancel, AppointmentComplete,
    AppointmentListResponse, AppointmentResponse, DoctorDashboard,
    DoctorDashboardResponse,
)
from ...schemas.auth import AuthTokenResponse, UserLogin
from ...schemas.common import MessageResponse
from ...schemas.doctor import (
    DoctorDetailResponse, DoctorListResponse, DoctorProfileUpdate, DoctorResponse,
    ReviewListResponse, ReviewResponse, SlotsResponse, SpecialitiesResponse,
)
from ...services.appointment_service import AppointmentService
from ...services.auth_service import AuthService
from ...services.doctor_service import DoctorService

router = APIRouter(prefix="/doctor", tags=["Doctors"])

# Public catalogue

@router.get("/list", response_model=DoctorListResponse)
async def doctor_list(
    speciality: Optional[str] = None,
    available: Optional[bool] = None,
    db: Session = Depends(get_db)
):
    """Active doctors, optionally filtered by speciality and availability."""
    doctors = DoctorService(db).list_doctors(speciality=speciality, available=available)
    return DoctorListResponse(doctors=[DoctorResponse.model_validate(d) for d in doctors])

@router.get("/specialities", response_model=SpecialitiesResponse)
async def doctor_specialities(db: Session = Depends(get_db)):
    return SpecialitiesResponse(specialities=DoctorService(db).specialities())

# Authenticated doctor

@router.post(
    "/login",
    response_model=AuthTokenResponse,
    dependencies=[Depends(auth_rate_limit)],
)
async def login(
    login_data: UserLogin,
    db: Session = Depends(get_db)
):
    tokens = AuthService(db).authenticate_user(login_data, UserRole.DOCTOR)
    return AuthTokenResponse(
        token=tokens.access_token,
        refresh_token=tokens.refresh_token,
        expires_in=tokens.expires_in,
    )

@router.get("/appointments", response_model=AppointmentListResponse)
async def appointments(
    doctor: Doctor = Depends(get_current_doctor),
    db: Session = Depends(get_db)
):
    items = AppointmentService(db).list_for_doctor(doctor.id)
    return AppointmentListResponse(
        appointments=[AppointmentResponse.model_validate(a) for a in items]
    )

@router.post("/complete-appointment", response_model=MessageResponse)
async def complete_appointment(
    data: AppointmentComplete,
    current_user: User = Depends(get_doctor_user),
    db: Session = Depends(get_db)
):
    AppointmentService(db).complete(
        data.appointmentId, current_user,
        prescription=data.prescription, notes=data.notes,
    )
    return MessageResponse(message="Appointment Completed")

@router.post("/cancel-appointment", response_model=MessageResponse)
async def cancel_appointment(
    data: AppointmentCancel,
    current_user: User = Depends(get_doctor_user),
    db: Session = Depends(get_db)
):
    AppointmentService(db).cancel(data.appointmentId, current_user, reason=data.reason)
    return MessageResponse(message="Appointment Cancelled")

@router.post("/no-show-appointment", response_model=MessageResponse)
async def no_show_appointment(
    data: AppointmentAction,
    current_user: User = Depends(get_doctor_user),
    db: Session = Depends(get_db)
):
    AppointmentService(db).mark_no_show(data.appointmentId, current_user)
    return MessageResponse(message="Appointment marked as no-show")

@router.get("/dashboard", response_model=DoctorDashboardResponse)
async def dashboard(
    doctor: Doctor = Depends(get_current_doctor),
    db: Session = Depends(get_db)
):
    stats = DoctorService(db).dashboard(doctor)
    return DoctorDashboardResponse(dashData=DoctorDashboard(
        earnings=stats["earnings"],
        appointments=stats["appointments"],
        patients=stats["patients"],
        latestAppointments=[
            AppointmentResponse.model_validate(a) for a in stats["latestAppointments"]
        ],
    ))

@router.get("/profile", response_model=DoctorDetailResponse)
async def profile(doctor: Doctor = Depends(get_current_doctor)):
    return DoctorDetailResponse(doctor=DoctorResponse.model_validate(doctor))

@router.post("/update-profile", response_model=DoctorDetailResponse)
async def update_profile(
    data: DoctorProfileUpdate,
    doctor: Doctor = Depends(get_current_doctor),
    db: Session = Depends(get_db)
):
    doctor = DoctorService(db).update_profile(doctor, data)
    return DoctorDetailResponse(doctor=DoctorResponse.model_validate(doctor))

@router.post("/change-availability", response_model=MessageResponse)
async def change_availability(
    doctor: Doctor = Depends(get_current_doctor),
    db: Session = Depends(get_db)
):
    DoctorService(db).toggle_availability(doctor.id)
    return MessageResponse(message="Availability Changed")

# Public doctor detail; registered last so the static paths above win

@router.get("/{doctor_id}", response_model=DoctorDetailResponse)
async def doctor_detail(doctor_id: int, db: Session = Depends(get_db)):
    doctor = DoctorService(db).get_public(doctor_id)
    return DoctorDetailResponse(doctor=DoctorResponse.model_validate(doctor))

@router.get("/{doctor_id}/slots", response_model=SlotsResponse)
async def doctor_slots(
    doctor_id: int,
    day: date = Query(..., alias="date"),
    db: Session = Depends(get_db)
):
    """Free booking times for a doctor on a given day."""
    doctor = DoctorService(db).get_public(doctor_id)
    slots = AppointmentService(db).available_slots(doctor, day) if doctor.is_available else []
    return SlotsResponse(doctor_id=doctor.id, date=day, slots=slots)

@router.get("/{doctor_id}/reviews", response_model=ReviewListResponse)
async def doctor_reviews(doctor_id: int, db: Session = Depends(get_db)):
    reviews = DoctorService(db).reviews(doctor_id)
    return ReviewListResponse(reviews=[ReviewResponse.model_validate(r) for r in reviews])
