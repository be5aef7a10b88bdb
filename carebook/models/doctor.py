from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, Boolean, Float, Text, JSON
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship

from ..core.database import Base

WEEKDAYS = (
    "monday", "tuesday", "wednesday", "thursday",
    "friday", "saturday", "sunday",
)

class Doctor(Base):
    __tablename__ = "doctors"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), unique=True, nullable=False)

    # Professional information
    medical_license = Column(String(50), nullable=True, unique=True)
    speciality = Column(String(100), nullable=False, index=True)
    degree = Column(String(100), nullable=False)
    experience_years = Column(Integer, nullable=False, default=0)
    about = Column(Text, nullable=True)
    consultation_fee = Column(Float, nullable=False, default=0)
    image_url = Column(String(500), nullable=True)
    verified_at = Column(DateTime, nullable=True)

    # Practice
    office_address = Column(JSON, nullable=True)
    # weekday -> {"start": "HH:MM", "end": "HH:MM"} or {"closed": true}
    working_hours = Column(JSON, nullable=True)

    # Availability
    is_available = Column(Boolean, default=True)

    # Reviews aggregate
    rating = Column(Float, nullable=False, default=0)
    total_reviews = Column(Integer, nullable=False, default=0)

    # Timestamps
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    # Relationships
    user = relationship("User", back_populates="doctor")
    appointments = relationship("Appointment", back_populates="doctor")
    reviews = relationship("Review", back_populates="doctor")

    @property
    def name(self) -> str:
        return self.user.full_name if self.user else ""

    @property
    def email(self) -> str:
        return self.user.email if self.user else ""

    def __repr__(self):
        return f"<Doctor(id={self.id}, user_id={self.user_id}, speciality='{self.speciality}')>"
