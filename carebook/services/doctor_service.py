from sqlalchemy import func
from sqlalchemy.orm import Session, joinedload
from typing import List, Optional
import logging

from ..core.exceptions import ConflictError, NotFoundError
from ..core.security import UserRole, get_password_hash
from ..models.appointment import Appointment, AppointmentStatus, PaymentStatus
from ..models.doctor import Doctor
from ..models.review import Review
from ..models.user import User
from ..schemas.common import dump_working_hours
from ..schemas.doctor import DoctorCreate, DoctorProfileUpdate

logger = logging.getLogger(__name__)

class DoctorService:
    def __init__(self, db: Session):
        self.db = db

    def _query(self):
        return self.db.query(Doctor).join(Doctor.user).options(joinedload(Doctor.user))

    def list_doctors(
        self,
        speciality: Optional[str] = None,
        available: Optional[bool] = None,
        include_inactive: bool = False,
    ) -> List[Doctor]:
        query = self._query()
        if not include_inactive:
            query = query.filter(User.is_active == True)  # noqa: E712
        if speciality:
            query = query.filter(func.lower(Doctor.speciality) == speciality.strip().lower())
        if available is not None:
            query = query.filter(Doctor.is_available == available)
        return query.order_by(User.full_name.asc()).all()

    def specialities(self) -> List[str]:
        rows = self.db.query(Doctor.speciality).distinct().order_by(Doctor.speciality).all()
        return [row[0] for row in rows if row[0]]

    def get(self, doctor_id: int) -> Doctor:
        doctor = self._query().filter(Doctor.id == doctor_id).first()
        if not doctor:
            raise NotFoundError("Doctor not found")
        return doctor

    def get_public(self, doctor_id: int) -> Doctor:
        """A doctor visible to patients: their account must be active."""
        doctor = self.get(doctor_id)
        if not doctor.user.is_active:
            raise NotFoundError("Doctor not found")
        return doctor

    def get_by_user(self, user_id: int) -> Doctor:
        doctor = self._query().filter(Doctor.user_id == user_id).first()
        if not doctor:
            raise NotFoundError("Doctor profile not found")
        return doctor

    def add_doctor(self, data: DoctorCreate, image_url: Optional[str] = None) -> Doctor:
        """Create a doctor-role user together with its practice profile."""
        if self.db.query(User).filter(User.email == data.email).first():
            raise ConflictError("A user with this email already exists")
        if data.medical_license and self.db.query(Doctor).filter(
            Doctor.medical_license == data.medical_license
        ).first():
            raise ConflictError("A doctor with this medical license already exists")

        user = User(
            email=data.email,
            password_hash=get_password_hash(data.password),
            full_name=data.name,
            phone=data.phone,
            role=UserRole.DOCTOR,
            profile_image_url=image_url,
            is_active=True,
            is_verified=True,
        )
        self.db.add(user)
        self.db.flush()

        doctor = Doctor(
            user_id=user.id,
            medical_license=data.medical_license,
            speciality=data.speciality,
            degree=data.degree,
            experience_years=data.experience,
            about=data.about,
            consultation_fee=data.fees,
            image_url=image_url,
            office_address=data.address.model_dump() if data.address else None,
            working_hours=dump_working_hours(data.working_hours),
            is_available=True,
        )
        self.db.add(doctor)
        self.db.commit()

        logger.info(f"Added doctor {doctor.id} ({data.speciality})")
        return self.get(doctor.id)

    def toggle_availability(self, doctor_id: int) -> Doctor:
        doctor = self.get(doctor_id)
        doctor.is_available = not doctor.is_available
        self.db.commit()

        logger.info(f"Doctor {doctor.id} availability set to {doctor.is_available}")
        return doctor

    def update_profile(self, doctor: Doctor, data: DoctorProfileUpdate) -> Doctor:
        if data.fees is not None:
            doctor.consultation_fee = data.fees
        if data.address is not None:
            doctor.office_address = data.address.model_dump()
        if data.available is not None:
            doctor.is_available = data.available
        if data.about is not None:
            doctor.about = data.about
        if data.workingHours is not None:
            doctor.working_hours = dump_working_hours(data.workingHours)

        self.db.commit()
        self.db.refresh(doctor)
        return doctor

    def dashboard(self, doctor: Doctor, latest: int = 5) -> dict:
        appointments = (
            self.db.query(Appointment)
            .filter(Appointment.doctor_id == doctor.id)
            .order_by(Appointment.created_at.desc(), Appointment.id.desc())
            .all()
        )

        earnings = sum(
            a.consultation_fee for a in appointments
            if a.status == AppointmentStatus.COMPLETED
            or a.payment_status == PaymentStatus.COMPLETED
        )

        return {
            "earnings": earnings,
            "appointments": len(appointments),
            "patients": len({a.patient_id for a in appointments}),
            "latestAppointments": appointments[:latest],
        }

    def admin_dashboard(self, latest: int = 5) -> dict:
        latest_appointments = (
            self.db.query(Appointment)
            .order_by(Appointment.created_at.desc(), Appointment.id.desc())
            .limit(latest)
            .all()
        )
        return {
            "doctors": self.db.query(Doctor).count(),
            "appointments": self.db.query(Appointment).count(),
            "patients": self.db.query(User).filter(User.role == UserRole.PATIENT).count(),
            "latestAppointments": latest_appointments,
        }

    def reviews(self, doctor_id: int) -> List[Review]:
        self.get_public(doctor_id)
        return (
            self.db.query(Review)
            .filter(Review.doctor_id == doctor_id)
            .order_by(Review.created_at.desc(), Review.id.desc())
            .all()
        )
