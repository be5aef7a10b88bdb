from fastapi import APIRouter, Depends, File, Form, UploadFile
from sqlalchemy.orm import Session
from typing import List, Optional

from ...core.database import get_db
from ...core.security import UserRole
from ...api.deps import get_admin_user, auth_rate_limit, parse_form
from ...models.user import User
from ...schemas.appointment import (
    AdminDashboard, AdminDashboardResponse, AppointmentCancel,
    AppointmentListResponse, AppointmentResponse,
)
from ...schemas.auth import AuthTokenResponse, UserLogin, UserResponse
from ...schemas.common import MessageResponse
from ...schemas.doctor import (
    AvailabilityToggle, DoctorCreate, DoctorDetailResponse, DoctorListResponse,
    DoctorResponse,
)
from ...services.appointment_service import AppointmentService
from ...services.auth_service import AuthService
from ...services.doctor_service import DoctorService
from ...services.storage_service import get_image_storage, store_image
from ...services.user_service import UserService

router = APIRouter(prefix="/admin", tags=["Admin"])

@router.post(
    "/login",
    response_model=AuthTokenResponse,
    dependencies=[Depends(auth_rate_limit)],
)
async def login(
    login_data: UserLogin,
    db: Session = Depends(get_db)
):
    tokens = AuthService(db).authenticate_user(login_data, UserRole.ADMIN)
    return AuthTokenResponse(
        token=tokens.access_token,
        refresh_token=tokens.refresh_token,
        expires_in=tokens.expires_in,
    )

@router.post("/add-doctor", response_model=DoctorDetailResponse)
async def add_doctor(
    name: Optional[str] = Form(None),
    email: Optional[str] = Form(None),
    password: Optional[str] = Form(None),
    speciality: Optional[str] = Form(None),
    degree: Optional[str] = Form(None),
    experience: Optional[str] = Form(None),
    fees: Optional[str] = Form(None),
    about: Optional[str] = Form(None),
    phone: Optional[str] = Form(None),
    medical_license: Optional[str] = Form(None),
    address: Optional[str] = Form(None),
    working_hours: Optional[str] = Form(None),
    image: Optional[UploadFile] = File(None),
    admin: User = Depends(get_admin_user),
    db: Session = Depends(get_db),
    storage=Depends(get_image_storage)
):
    """Onboard a doctor: creates the login account and the practice profile."""
    data = parse_form(
        DoctorCreate,
        name=name, email=email, password=password, speciality=speciality,
        degree=degree, experience=experience, fees=fees, about=about,
        phone=phone, medical_license=medical_license, address=address,
        working_hours=working_hours,
    )

    image_url = None
    if image is not None and image.filename:
        image_url = await store_image(storage, image, folder="doctors")

    doctor = DoctorService(db).add_doctor(data, image_url=image_url)
    return DoctorDetailResponse(doctor=DoctorResponse.model_validate(doctor))

@router.get("/all-doctors", response_model=DoctorListResponse)
async def all_doctors(
    admin: User = Depends(get_admin_user),
    db: Session = Depends(get_db)
):
    doctors = DoctorService(db).list_doctors(include_inactive=True)
    return DoctorListResponse(doctors=[DoctorResponse.model_validate(d) for d in doctors])

@router.post("/change-availability", response_model=MessageResponse)
async def change_availability(
    data: AvailabilityToggle,
    admin: User = Depends(get_admin_user),
    db: Session = Depends(get_db)
):
    DoctorService(db).toggle_availability(data.docId)
    return MessageResponse(message="Availability Changed")

@router.get("/appointments", response_model=AppointmentListResponse)
async def appointments_admin(
    admin: User = Depends(get_admin_user),
    db: Session = Depends(get_db)
):
    items = AppointmentService(db).list_all()
    return AppointmentListResponse(
        appointments=[AppointmentResponse.model_validate(a) for a in items]
    )

@router.post("/cancel-appointment", response_model=MessageResponse)
async def appointment_cancel(
    data: AppointmentCancel,
    admin: User = Depends(get_admin_user),
    db: Session = Depends(get_db)
):
    AppointmentService(db).cancel(data.appointmentId, admin, reason=data.reason)
    return MessageResponse(message="Appointment Cancelled")

@router.get("/dashboard", response_model=AdminDashboardResponse)
async def admin_dashboard(
    admin: User = Depends(get_admin_user),
    db: Session = Depends(get_db)
):
    stats = DoctorService(db).admin_dashboard()
    return AdminDashboardResponse(dashData=AdminDashboard(
        doctors=stats["doctors"],
        appointments=stats["appointments"],
        patients=stats["patients"],
        latestAppointments=[
            AppointmentResponse.model_validate(a) for a in stats["latestAppointments"]
        ],
    ))

@router.get("/users", response_model=List[UserResponse])
async def list_users(
    skip: int = 0,
    limit: int = 10,
    role: Optional[UserRole] = None,
    admin: User = Depends(get_admin_user),
    db: Session = Depends(get_db)
):
    """List user accounts (admin only)."""
    users = UserService(db).list_users(skip=skip, limit=limit, role=role)
    return [UserResponse.model_validate(user) for user in users]

@router.patch("/users/{user_id}/status", response_model=MessageResponse)
async def update_user_status(
    user_id: int,
    is_active: bool,
    admin: User = Depends(get_admin_user),
    db: Session = Depends(get_db)
):
    """Update user active status (admin only)."""
    UserService(db).set_active(user_id, is_active, admin)
    return MessageResponse(
        message=f"User {'activated' if is_active else 'deactivated'} successfully"
    )
