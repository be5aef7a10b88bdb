from datetime import date, datetime
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..models.appointment import AppointmentStatus, PaymentStatus
from ..models.user import Gender
from .common import Address, normalize_time, parse_iso_date

class AppointmentBooking(BaseModel):
    docId: int
    slotDate: date
    slotTime: str
    symptoms: Optional[str] = Field(default=None, max_length=1000)

    @field_validator("docId", mode="before")
    @classmethod
    def validate_doc_id(cls, v):
        if v is None or v == "":
            raise ValueError("Doctor ID is required")
        try:
            v = int(v)
        except (TypeError, ValueError):
            raise ValueError("Invalid doctor ID")
        if v <= 0:
            raise ValueError("Invalid doctor ID")
        return v

    @field_validator("slotDate", mode="before")
    @classmethod
    def validate_slot_date(cls, v):
        if v is None or v == "":
            raise ValueError("Appointment date is required")
        return parse_iso_date(v)

    @field_validator("slotTime", mode="before")
    @classmethod
    def validate_slot_time(cls, v):
        if v is None or (isinstance(v, str) and not v.strip()):
            raise ValueError("Appointment time is required")
        return normalize_time(v)

class AppointmentAction(BaseModel):
    appointmentId: int

    @field_validator("appointmentId")
    @classmethod
    def validate_appointment_id(cls, v):
        if v <= 0:
            raise ValueError("Invalid appointment ID")
        return v

class AppointmentCancel(AppointmentAction):
    reason: Optional[str] = Field(default=None, max_length=255)

class AppointmentComplete(AppointmentAction):
    prescription: Optional[str] = None
    notes: Optional[str] = None

class DoctorSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    speciality: str
    image_url: Optional[str] = None
    consultation_fee: float
    office_address: Optional[Address] = None

class PatientSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    full_name: str
    email: str
    phone: Optional[str] = None
    date_of_birth: Optional[date] = None
    gender: Optional[Gender] = None
    profile_image_url: Optional[str] = None

class AppointmentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    patient_id: int
    doctor_id: int
    appointment_date: date
    appointment_time: str
    duration_minutes: int
    status: AppointmentStatus
    symptoms: Optional[str] = None
    notes: Optional[str] = None
    prescription: Optional[str] = None
    consultation_fee: float
    payment_status: PaymentStatus
    razorpay_order_id: Optional[str] = None
    cancelled_reason: Optional[str] = None
    cancelled_by: Optional[int] = None
    cancelled_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    doctor: Optional[DoctorSummary] = None
    patient: Optional[PatientSummary] = None

class AppointmentBookedResponse(BaseModel):
    success: bool = True
    message: str
    appointment: AppointmentResponse

class AppointmentListResponse(BaseModel):
    success: bool = True
    appointments: List[AppointmentResponse]

class DoctorDashboard(BaseModel):
    earnings: float
    appointments: int
    patients: int
    latestAppointments: List[AppointmentResponse]

class DoctorDashboardResponse(BaseModel):
    success: bool = True
    dashData: DoctorDashboard

class AdminDashboard(BaseModel):
    doctors: int
    appointments: int
    patients: int
    latestAppointments: List[AppointmentResponse]

class AdminDashboardResponse(BaseModel):
    success: bool = True
    dashData: AdminDashboard
