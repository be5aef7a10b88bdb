from datetime import date, datetime
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, field_validator

from ..models.notification import NotificationType
from ..models.user import Gender
from .common import Address, check_name, check_phone, parse_iso_date

class ProfileUpdate(BaseModel):
    """Fields accepted by ``POST /api/user/update-profile`` (multipart form)."""

    name: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[Address] = None
    dob: Optional[date] = None
    gender: Optional[Gender] = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        return check_name(v) if v is not None else v

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v):
        return check_phone(v)

    @field_validator("gender", mode="before")
    @classmethod
    def normalize_gender(cls, v):
        if isinstance(v, str):
            v = v.strip().lower().replace(" ", "_")
            if v not in {g.value for g in Gender}:
                raise ValueError("Invalid gender selection")
        return v

    @field_validator("dob", mode="before")
    @classmethod
    def validate_dob(cls, v):
        if v is None or v == "":
            return None
        dob = parse_iso_date(v)
        if dob > date.today():
            raise ValueError("Date of birth cannot be in the future")
        return dob

class NotificationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    message: str
    type: NotificationType
    is_read: bool
    appointment_id: Optional[int] = None
    created_at: Optional[datetime] = None

class NotificationListResponse(BaseModel):
    success: bool = True
    notifications: List[NotificationResponse]
    unreadCount: int
