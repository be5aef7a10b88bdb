from sqlalchemy import Column, Integer, ForeignKey, DateTime, Text
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship

from ..core.database import Base

class Review(Base):
    __tablename__ = "reviews"

    id = Column(Integer, primary_key=True, index=True)
    patient_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    doctor_id = Column(Integer, ForeignKey("doctors.id"), nullable=False, index=True)
    appointment_id = Column(Integer, ForeignKey("appointments.id"), nullable=False, unique=True)

    rating = Column(Integer, nullable=False)
    review_text = Column(Text, nullable=True)

    created_at = Column(DateTime, server_default=func.now())

    patient = relationship("User")
    doctor = relationship("Doctor", back_populates="reviews")
    appointment = relationship("Appointment", back_populates="review")

    def __repr__(self):
        return f"<Review(id={self.id}, doctor_id={self.doctor_id}, rating={self.rating})>"
