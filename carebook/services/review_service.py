from sqlalchemy import func
from sqlalchemy.orm import Session
import logging

from ..core.exceptions import AuthorizationError, BadRequestError, ConflictError, NotFoundError
from ..models.appointment import Appointment, AppointmentStatus
from ..models.doctor import Doctor
from ..models.review import Review
from ..models.user import User
from ..schemas.doctor import ReviewCreate

logger = logging.getLogger(__name__)

class ReviewService:
    def __init__(self, db: Session):
        self.db = db

    def add_review(self, patient: User, data: ReviewCreate) -> Review:
        """Review a completed appointment and refresh the doctor's rating."""
        appointment = self.db.query(Appointment).filter(
            Appointment.id == data.appointmentId
        ).first()
        if not appointment:
            raise NotFoundError("Appointment not found")
        if appointment.patient_id != patient.id:
            raise AuthorizationError("Unauthorized action")
        if appointment.status != AppointmentStatus.COMPLETED:
            raise BadRequestError("Only completed appointments can be reviewed")
        if self.db.query(Review).filter(Review.appointment_id == appointment.id).first():
            raise ConflictError("Appointment already reviewed")

        review = Review(
            patient_id=patient.id,
            doctor_id=appointment.doctor_id,
            appointment_id=appointment.id,
            rating=data.rating,
            review_text=data.reviewText,
        )
        self.db.add(review)
        self.db.flush()

        average, count = self.db.query(
            func.avg(Review.rating), func.count(Review.id)
        ).filter(Review.doctor_id == appointment.doctor_id).one()

        doctor = self.db.query(Doctor).filter(Doctor.id == appointment.doctor_id).first()
        doctor.rating = round(float(average or 0), 2)
        doctor.total_reviews = count

        self.db.commit()
        self.db.refresh(review)

        logger.info(f"Review {review.id} added for doctor {doctor.id}")
        return review
