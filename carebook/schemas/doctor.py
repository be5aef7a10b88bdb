from datetime import date, datetime
from typing import Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator

from .common import (
    Address, DayHours, normalize_email, check_name, check_password_strength,
    check_phone, check_working_hours,
)

class DoctorCreate(BaseModel):
    """Fields accepted by ``POST /api/admin/add-doctor`` (multipart form)."""

    name: str
    email: str
    password: str
    speciality: str
    degree: str
    experience: int
    fees: float
    about: Optional[str] = None
    phone: Optional[str] = None
    medical_license: Optional[str] = None
    address: Optional[Address] = None
    working_hours: Optional[Dict[str, DayHours]] = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        if not v.strip():
            raise ValueError("Doctor name is required")
        return check_name(v, max_length=100)

    @field_validator("email")
    @classmethod
    def validate_email(cls, v):
        return normalize_email(v)

    @field_validator("password")
    @classmethod
    def validate_password(cls, v):
        return check_password_strength(v)

    @field_validator("speciality")
    @classmethod
    def validate_speciality(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("Speciality is required")
        return v

    @field_validator("degree")
    @classmethod
    def validate_degree(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("Degree is required")
        return v

    @field_validator("experience", mode="before")
    @classmethod
    def validate_experience(cls, v):
        try:
            v = int(str(v).strip())
        except (TypeError, ValueError):
            raise ValueError("Experience must be a number between 0 and 70")
        if not 0 <= v <= 70:
            raise ValueError("Experience must be a number between 0 and 70")
        return v

    @field_validator("fees", mode="before")
    @classmethod
    def validate_fees(cls, v):
        try:
            v = float(str(v).strip())
        except (TypeError, ValueError):
            raise ValueError("Fees must be a positive number")
        if v < 0:
            raise ValueError("Fees must be a positive number")
        return v

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v):
        return check_phone(v)

    @field_validator("medical_license")
    @classmethod
    def validate_license(cls, v):
        if v is not None:
            v = v.strip() or None
        return v

    @field_validator("working_hours")
    @classmethod
    def validate_working_hours(cls, v):
        return check_working_hours(v)

class DoctorProfileUpdate(BaseModel):
    fees: Optional[float] = Field(default=None, ge=0)
    address: Optional[Address] = None
    available: Optional[bool] = None
    about: Optional[str] = Field(default=None, max_length=2000)
    workingHours: Optional[Dict[str, DayHours]] = None

    @field_validator("workingHours")
    @classmethod
    def validate_working_hours(cls, v):
        return check_working_hours(v)

class AvailabilityToggle(BaseModel):
    docId: int

    @field_validator("docId")
    @classmethod
    def validate_doc_id(cls, v):
        if v <= 0:
            raise ValueError("Invalid doctor ID")
        return v

class DoctorResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    name: str
    email: str
    speciality: str
    degree: str
    experience_years: int
    about: Optional[str] = None
    consultation_fee: float
    image_url: Optional[str] = None
    medical_license: Optional[str] = None
    is_available: bool
    office_address: Optional[Address] = None
    working_hours: Optional[Dict[str, DayHours]] = None
    rating: float
    total_reviews: int
    verified_at: Optional[datetime] = None

class DoctorListResponse(BaseModel):
    success: bool = True
    doctors: List[DoctorResponse]

class DoctorDetailResponse(BaseModel):
    success: bool = True
    doctor: DoctorResponse

class SpecialitiesResponse(BaseModel):
    success: bool = True
    specialities: List[str]

class SlotsResponse(BaseModel):
    success: bool = True
    doctor_id: int
    date: date
    slots: List[str]

class ReviewCreate(BaseModel):
    appointmentId: int
    rating: int
    reviewText: Optional[str] = Field(default=None, max_length=2000)

    @field_validator("appointmentId")
    @classmethod
    def validate_appointment_id(cls, v):
        if v <= 0:
            raise ValueError("Invalid appointment ID")
        return v

    @field_validator("rating")
    @classmethod
    def validate_rating(cls, v):
        if not 1 <= v <= 5:
            raise ValueError("Rating must be between 1 and 5")
        return v

class ReviewResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    patient_id: int
    doctor_id: int
    appointment_id: int
    rating: int
    review_text: Optional[str] = None
    created_at: Optional[datetime] = None

class ReviewCreatedResponse(BaseModel):
    success: bool = True
    review: ReviewResponse

class ReviewListResponse(BaseModel):
    success: bool = True
    reviews: List[ReviewResponse]
