"""
Shared request/response building blocks and field validators.

Validator messages are user-facing: the API returns the first failing
message as ``{"success": false, "message": ...}``.
"""
from datetime import date, datetime
from typing import Dict, Optional
import re

from email_validator import validate_email, EmailNotValidError
from pydantic import BaseModel, ConfigDict, model_validator

from ..models.doctor import WEEKDAYS

PHONE_PATTERN = re.compile(r"^[0-9]{10,15}$")
TIME_PATTERN = re.compile(r"^(\d{1,2}):(\d{2})\s*([AaPp][Mm])?$")
STRONG_PASSWORD_PATTERN = re.compile(r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)")


class MessageResponse(BaseModel):
    success: bool = True
    message: str


def normalize_email(value: str) -> str:
    try:
        result = validate_email(value.strip(), check_deliverability=False)
    except EmailNotValidError:
        raise ValueError("Please enter a valid email")
    return result.normalized.lower()


def check_name(value: str, max_length: int = 50) -> str:
    value = value.strip()
    if not value:
        raise ValueError("Name is required")
    if not 2 <= len(value) <= max_length:
        raise ValueError(f"Name must be between 2 and {max_length} characters")
    return value


def check_password_strength(value: str) -> str:
    if len(value) < 8:
        raise ValueError("Password must be at least 8 characters")
    if not STRONG_PASSWORD_PATTERN.match(value):
        raise ValueError(
            "Password must contain at least one uppercase letter, "
            "one lowercase letter, and one number"
        )
    return value


def check_phone(value: Optional[str]) -> Optional[str]:
    if value is None:
        return value
    value = value.strip()
    if not PHONE_PATTERN.match(value):
        raise ValueError("Please enter a valid phone number")
    return value


def parse_iso_date(value) -> date:
    """Accept a date, or an ISO-8601 date/datetime string."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not value.strip():
        raise ValueError("Invalid date format")
    value = value.strip()
    try:
        return date.fromisoformat(value)
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00")).date()
    except ValueError:
        raise ValueError("Invalid date format")


def normalize_time(value: str) -> str:
    """Normalise ``HH:MM`` or ``H:MM AM/PM`` to 24h ``HH:MM``."""
    match = TIME_PATTERN.match(value.strip()) if isinstance(value, str) else None
    if not match:
        raise ValueError("Invalid time format")
    hour, minute, meridiem = int(match.group(1)), int(match.group(2)), match.group(3)
    if minute > 59:
        raise ValueError("Invalid time format")
    if meridiem:
        if not 1 <= hour <= 12:
            raise ValueError("Invalid time format")
        hour = hour % 12
        if meridiem.lower() == "pm":
            hour += 12
    elif hour > 23:
        raise ValueError("Invalid time format")
    return f"{hour:02d}:{minute:02d}"


class Address(BaseModel):
    line1: str = ""
    line2: str = ""
    city: str = ""
    state: str = ""
    zip: str = ""


class DayHours(BaseModel):
    model_config = ConfigDict(extra="forbid")

    start: Optional[str] = None
    end: Optional[str] = None
    closed: bool = False

    @model_validator(mode="after")
    def check_range(self):
        if self.closed:
            self.start = None
            self.end = None
            return self
        if not self.start or not self.end:
            raise ValueError("Working hours need a start and end time")
        self.start = normalize_time(self.start)
        self.end = normalize_time(self.end)
        if self.start >= self.end:
            raise ValueError("Working hours start must be before end")
        return self


def check_working_hours(value: Optional[Dict[str, DayHours]]) -> Optional[Dict[str, DayHours]]:
    if value is None:
        return value
    unknown = [day for day in value if day not in WEEKDAYS]
    if unknown:
        raise ValueError(f"Unknown weekday: {unknown[0]}")
    return value


def dump_working_hours(value: Optional[Dict[str, DayHours]]) -> Optional[dict]:
    """Stored form: ``{"closed": true}`` or ``{"start", "end"}`` per day."""
    if value is None:
        return None
    stored = {}
    for day, hours in value.items():
        if hours.closed:
            stored[day] = {"closed": True}
        else:
            stored[day] = {"start": hours.start, "end": hours.end}
    return stored
