from fastapi import APIRouter, Depends, File, Form, UploadFile
from sqlalchemy.orm import Session
from typing import Optional

from ...core.database import get_db
from ...core.security import UserRole
from ...api.deps import (
    get_current_user, get_patient_user, auth_rate_limit, booking_rate_limit, payment_rate_limit,
    parse_form,
)
from ...models.user import User
from ...schemas.appointment import (
    AppointmentBookedResponse, AppointmentBooking, AppointmentCancel,
    AppointmentListResponse, AppointmentResponse,
)
from ...schemas.auth import (
    AuthTokenResponse, ProfileResponse, UserLogin, UserRegister, UserResponse,
)
from ...schemas.common import MessageResponse
from ...schemas.doctor import ReviewCreate, ReviewCreatedResponse, ReviewResponse
from ...schemas.payment import PaymentOrderRequest, PaymentOrderResponse, PaymentVerification
from ...schemas.user import NotificationListResponse, NotificationResponse, ProfileUpdate
from ...services.appointment_service import AppointmentService
from ...services.auth_service import AuthService
from ...services.notification_service import NotificationService
from ...services.payment_service import PaymentService, RazorpayClient, get_payment_gateway
from ...services.review_service import ReviewService
from ...services.storage_service import get_image_storage, store_image
from ...services.user_service import UserService

router = APIRouter(prefix="/user", tags=["Patients"])

@router.post(
    "/register",
    response_model=AuthTokenResponse,
    dependencies=[Depends(auth_rate_limit)],
)
async def register(
    user_data: UserRegister,
    db: Session = Depends(get_db)
):
    """Register a patient account and log it in."""
    auth_service = AuthService(db)
    user = auth_service.register_user(user_data, role=UserRole.PATIENT)
    tokens = auth_service.issue_tokens(user)
    db.commit()

    return AuthTokenResponse(
        token=tokens.access_token,
        refresh_token=tokens.refresh_token,
        expires_in=tokens.expires_in,
    )

@router.post(
    "/login",
    response_model=AuthTokenResponse,
    dependencies=[Depends(auth_rate_limit)],
)
async def login(
    login_data: UserLogin,
    db: Session = Depends(get_db)
):
    """Authenticate a patient and return access tokens."""
    tokens = AuthService(db).authenticate_user(login_data, UserRole.PATIENT)
    return AuthTokenResponse(
        token=tokens.access_token,
        refresh_token=tokens.refresh_token,
        expires_in=tokens.expires_in,
    )

@router.get("/get-profile", response_model=ProfileResponse)
async def get_profile(current_user: User = Depends(get_patient_user)):
    return ProfileResponse(userData=UserResponse.model_validate(current_user))

@router.post("/update-profile")
async def update_profile(
    name: Optional[str] = Form(None),
    phone: Optional[str] = Form(None),
    address: Optional[str] = Form(None),
    dob: Optional[str] = Form(None),
    gender: Optional[str] = Form(None),
    image: Optional[UploadFile] = File(None),
    current_user: User = Depends(get_patient_user),
    db: Session = Depends(get_db),
    storage=Depends(get_image_storage)
):
    """Update profile fields and, optionally, the profile picture."""
    data = parse_form(
        ProfileUpdate, name=name, phone=phone, address=address, dob=dob, gender=gender
    )

    image_url = None
    if image is not None and image.filename:
        image_url = await store_image(storage, image, folder="profiles")

    user = UserService(db).update_profile(current_user, data, image_url=image_url)
    return {
        "success": True,
        "message": "Profile Updated",
        "userData": UserResponse.model_validate(user),
    }

@router.post("/book-appointment", response_model=AppointmentBookedResponse)
async def book_appointment(
    booking: AppointmentBooking,
    current_user: User = Depends(booking_rate_limit),
    db: Session = Depends(get_db)
):
    appointment = AppointmentService(db).book(current_user, booking)
    return AppointmentBookedResponse(
        message="Appointment Booked",
        appointment=AppointmentResponse.model_validate(appointment),
    )

@router.get("/appointments", response_model=AppointmentListResponse)
async def list_appointments(
    current_user: User = Depends(get_patient_user),
    db: Session = Depends(get_db)
):
    appointments = AppointmentService(db).list_for_patient(current_user.id)
    return AppointmentListResponse(
        appointments=[AppointmentResponse.model_validate(a) for a in appointments]
    )

@router.post("/cancel-appointment", response_model=MessageResponse)
async def cancel_appointment(
    data: AppointmentCancel,
    current_user: User = Depends(get_patient_user),
    db: Session = Depends(get_db)
):
    AppointmentService(db).cancel(data.appointmentId, current_user, reason=data.reason)
    return MessageResponse(message="Appointment Cancelled")

@router.post(
    "/payment-razorpay",
    response_model=PaymentOrderResponse,
    dependencies=[Depends(payment_rate_limit)],
)
async def payment_razorpay(
    data: PaymentOrderRequest,
    current_user: User = Depends(get_patient_user),
    db: Session = Depends(get_db),
    gateway: RazorpayClient = Depends(get_payment_gateway)
):
    """Create a Razorpay order for an appointment's consultation fee."""
    order = await PaymentService(db, gateway).create_order(data.appointmentId, current_user)
    return PaymentOrderResponse(order=order, key_id=gateway.key_id)

@router.post(
    "/verifyRazorpay",
    response_model=MessageResponse,
    dependencies=[Depends(payment_rate_limit)],
)
async def verify_razorpay(
    data: PaymentVerification,
    current_user: User = Depends(get_patient_user),
    db: Session = Depends(get_db),
    gateway: RazorpayClient = Depends(get_payment_gateway)
):
    PaymentService(db, gateway).verify_payment(data, current_user)
    return MessageResponse(message="Payment Successful")

@router.post("/reviews", response_model=ReviewCreatedResponse)
async def add_review(
    data: ReviewCreate,
    current_user: User = Depends(get_patient_user),
    db: Session = Depends(get_db)
):
    review = ReviewService(db).add_review(current_user, data)
    return ReviewCreatedResponse(review=ReviewResponse.model_validate(review))

@router.get("/notifications", response_model=NotificationListResponse)
async def list_notifications(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    service = NotificationService(db)
    notifications = service.list_for_user(current_user.id)
    return NotificationListResponse(
        notifications=[NotificationResponse.model_validate(n) for n in notifications],
        unreadCount=service.unread_count(current_user.id),
    )

@router.post("/notifications/read-all", response_model=MessageResponse)
async def mark_all_notifications_read(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    NotificationService(db).mark_all_read(current_user.id)
    return MessageResponse(message="All notifications marked as read")

@router.post("/notifications/{notification_id}/read", response_model=MessageResponse)
async def mark_notification_read(
    notification_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    NotificationService(db).mark_read(current_user.id, notification_id)
    return MessageResponse(message="Notification marked as read")
