"""
Appointment booking workflow.

A slot is a (doctor, date, HH:MM) triple. At most one scheduled or
completed appointment may hold a slot; cancelled and no-show appointments
release it. Only scheduled appointments change status.
"""
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload
from datetime import date, datetime, timedelta
from typing import List, Optional, Tuple
import logging

from ..core.config import settings
from ..core.exceptions import (
    AuthorizationError, BadRequestError, ConflictError, NotFoundError,
)
from ..core.security import UserRole
from ..models.appointment import (
    ACTIVE_STATUSES, Appointment, AppointmentStatus, PaymentStatus,
)
from ..models.doctor import Doctor, WEEKDAYS
from ..models.notification import NotificationType
from ..models.user import User
from ..schemas.appointment import AppointmentBooking
from .notification_service import NotificationService

logger = logging.getLogger(__name__)


def to_minutes(value: str) -> int:
    hours, minutes = value.split(":")
    return int(hours) * 60 + int(minutes)


def from_minutes(value: int) -> str:
    return f"{value // 60:02d}:{value % 60:02d}"


def working_window(doctor: Doctor, day: date) -> Optional[Tuple[str, str]]:
    """Opening hours for ``day``, or None when the doctor is closed."""
    entry = (doctor.working_hours or {}).get(WEEKDAYS[day.weekday()])
    if entry is None:
        return settings.DEFAULT_DAY_START, settings.DEFAULT_DAY_END
    if entry.get("closed"):
        return None
    return entry["start"], entry["end"]


class AppointmentService:
    def __init__(self, db: Session):
        self.db = db
        self.notifications = NotificationService(db)

    # Queries

    def _query(self):
        return self.db.query(Appointment).options(
            joinedload(Appointment.doctor).joinedload(Doctor.user),
            joinedload(Appointment.patient),
        )

    def get(self, appointment_id: int) -> Appointment:
        appointment = self._query().filter(Appointment.id == appointment_id).first()
        if not appointment:
            raise NotFoundError("Appointment not found")
        return appointment

    def list_for_patient(self, patient_id: int) -> List[Appointment]:
        return (
            self._query()
            .filter(Appointment.patient_id == patient_id)
            .order_by(Appointment.appointment_date.desc(), Appointment.appointment_time.desc())
            .all()
        )

    def list_for_doctor(self, doctor_id: int) -> List[Appointment]:
        return (
            self._query()
            .filter(Appointment.doctor_id == doctor_id)
            .order_by(Appointment.appointment_date.desc(), Appointment.appointment_time.desc())
            .all()
        )

    def list_all(self, limit: Optional[int] = None) -> List[Appointment]:
        query = self._query().order_by(Appointment.created_at.desc(), Appointment.id.desc())
        if limit:
            query = query.limit(limit)
        return query.all()

    def booked_times(self, doctor_id: int, day: date) -> List[str]:
        rows = self.db.query(Appointment.appointment_time).filter(
            Appointment.doctor_id == doctor_id,
            Appointment.appointment_date == day,
            Appointment.status.in_(ACTIVE_STATUSES),
        ).all()
        return [row[0] for row in rows]

    def slot_taken(self, doctor_id: int, day: date, time: str) -> bool:
        return self.db.query(Appointment.id).filter(
            Appointment.doctor_id == doctor_id,
            Appointment.appointment_date == day,
            Appointment.appointment_time == time,
            Appointment.status.in_(ACTIVE_STATUSES),
        ).first() is not None

    def available_slots(self, doctor: Doctor, day: date, now: Optional[datetime] = None) -> List[str]:
        """Free start times for ``day`` in SLOT_DURATION_MINUTES steps."""
        now = now or datetime.now()
        if day < now.date():
            return []

        window = working_window(doctor, day)
        if window is None:
            return []

        step = settings.SLOT_DURATION_MINUTES
        start, end = to_minutes(window[0]), to_minutes(window[1])
        taken = set(self.booked_times(doctor.id, day))
        earliest = now.hour * 60 + now.minute if day == now.date() else -1

        slots = []
        current = start
        while current + step <= end:
            slot = from_minutes(current)
            if current > earliest and slot not in taken:
                slots.append(slot)
            current += step
        return slots

    # Commands

    def book(self, patient: User, booking: AppointmentBooking, now: Optional[datetime] = None) -> Appointment:
        """Book ``booking.slotTime`` on ``booking.slotDate`` with the doctor."""
        now = now or datetime.now()

        doctor = self.db.query(Doctor).filter(Doctor.id == booking.docId).first()
        if not doctor or not doctor.user or not doctor.user.is_active:
            raise NotFoundError("Doctor not found")
        if not doctor.is_available:
            raise BadRequestError("Doctor not available")

        slot_start = datetime.combine(booking.slotDate, datetime.min.time()) + timedelta(
            minutes=to_minutes(booking.slotTime)
        )
        if slot_start <= now:
            raise BadRequestError("Cannot book an appointment in the past")

        window = working_window(doctor, booking.slotDate)
        if window is None:
            raise BadRequestError("Doctor is not working on this day")
        duration = settings.SLOT_DURATION_MINUTES
        requested = to_minutes(booking.slotTime)
        if requested < to_minutes(window[0]) or requested + duration > to_minutes(window[1]):
            raise BadRequestError("Selected time is outside the doctor's working hours")
        if (requested - to_minutes(window[0])) % duration != 0:
            raise BadRequestError("Selected time is not an available slot")

        if self.slot_taken(doctor.id, booking.slotDate, booking.slotTime):
            logger.warning(
                f"Slot {booking.slotDate} {booking.slotTime} already taken for doctor {doctor.id}"
            )
            raise ConflictError("Slot not available")

        clash = self.db.query(Appointment).filter(
            Appointment.patient_id == patient.id,
            Appointment.appointment_date == booking.slotDate,
            Appointment.appointment_time == booking.slotTime,
            Appointment.status == AppointmentStatus.SCHEDULED,
        ).first()
        if clash:
            raise ConflictError("You already have an appointment at this time")

        appointment = Appointment(
            patient_id=patient.id,
            doctor_id=doctor.id,
            appointment_date=booking.slotDate,
            appointment_time=booking.slotTime,
            duration_minutes=duration,
            symptoms=booking.symptoms,
            consultation_fee=doctor.consultation_fee,
            status=AppointmentStatus.SCHEDULED,
            payment_status=PaymentStatus.PENDING,
        )
        self.db.add(appointment)
        try:
            self.db.flush()
        except IntegrityError:
            # A concurrent booking took the slot after the check above
            self.db.rollback()
            logger.warning(
                f"Slot {booking.slotDate} {booking.slotTime} lost to a concurrent booking for doctor {doctor.id}"
            )
            raise ConflictError("Slot not available")

        when = f"{booking.slotDate.isoformat()} at {booking.slotTime}"
        self.notifications.notify(
            patient.id,
            "Appointment booked",
            f"Your appointment with {doctor.name} is booked for {when}.",
            NotificationType.SUCCESS,
            appointment.id,
        )
        self.notifications.notify(
            doctor.user_id,
            "New appointment",
            f"{patient.full_name} booked an appointment for {when}.",
            NotificationType.INFO,
            appointment.id,
        )
        self.db.commit()

        logger.info(f"Appointment {appointment.id} booked by patient {patient.id} with doctor {doctor.id}")
        return self.get(appointment.id)

    def cancel(self, appointment_id: int, actor: User, reason: Optional[str] = None) -> Appointment:
        """Cancel a scheduled appointment on behalf of ``actor``."""
        appointment = self.get(appointment_id)
        self._check_access(appointment, actor)
        self._check_transition(appointment)

        appointment.status = AppointmentStatus.CANCELLED
        appointment.cancelled_reason = reason
        appointment.cancelled_by = actor.id
        appointment.cancelled_at = datetime.utcnow()
        if appointment.payment_status == PaymentStatus.COMPLETED:
            appointment.payment_status = PaymentStatus.REFUNDED

        when = f"{appointment.appointment_date.isoformat()} at {appointment.appointment_time}"
        message = f"The appointment on {when} was cancelled."
        if reason:
            message = f"{message} Reason: {reason}"
        if actor.id != appointment.patient_id:
            self.notifications.notify(
                appointment.patient_id, "Appointment cancelled", message,
                NotificationType.WARNING, appointment.id,
            )
        if actor.id != appointment.doctor.user_id:
            self.notifications.notify(
                appointment.doctor.user_id, "Appointment cancelled", message,
                NotificationType.WARNING, appointment.id,
            )
        self.db.commit()

        logger.info(f"Appointment {appointment.id} cancelled by user {actor.id} ({actor.role.value})")
        return appointment

    def complete(
        self,
        appointment_id: int,
        doctor_user: User,
        prescription: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> Appointment:
        appointment = self.get(appointment_id)
        self._check_access(appointment, doctor_user)
        self._check_transition(appointment)

        appointment.status = AppointmentStatus.COMPLETED
        appointment.completed_at = datetime.utcnow()
        if prescription is not None:
            appointment.prescription = prescription
        if notes is not None:
            appointment.notes = notes

        self.notifications.notify(
            appointment.patient_id,
            "Appointment completed",
            f"Your appointment with {appointment.doctor.name} is complete.",
            NotificationType.SUCCESS,
            appointment.id,
        )
        self.db.commit()

        logger.info(f"Appointment {appointment.id} completed")
        return appointment

    def mark_no_show(self, appointment_id: int, doctor_user: User, now: Optional[datetime] = None) -> Appointment:
        now = now or datetime.now()
        appointment = self.get(appointment_id)
        self._check_access(appointment, doctor_user)
        self._check_transition(appointment)

        slot_start = datetime.combine(appointment.appointment_date, datetime.min.time()) + timedelta(
            minutes=to_minutes(appointment.appointment_time)
        )
        if slot_start > now:
            raise BadRequestError("Appointment has not started yet")

        appointment.status = AppointmentStatus.NO_SHOW
        self.notifications.notify(
            appointment.patient_id,
            "Missed appointment",
            f"You were marked as a no-show for your appointment with {appointment.doctor.name}.",
            NotificationType.WARNING,
            appointment.id,
        )
        self.db.commit()

        logger.info(f"Appointment {appointment.id} marked as no-show")
        return appointment

    # Rules

    def _check_access(self, appointment: Appointment, actor: User):
        if actor.role == UserRole.ADMIN:
            return
        if actor.role == UserRole.PATIENT and appointment.patient_id == actor.id:
            return
        if actor.role == UserRole.DOCTOR and appointment.doctor.user_id == actor.id:
            return
        logger.warning(f"User {actor.id} denied access to appointment {appointment.id}")
        raise AuthorizationError("Unauthorized action")

    def _check_transition(self, appointment: Appointment):
        if appointment.status != AppointmentStatus.SCHEDULED:
            raise BadRequestError(f"Appointment is already {appointment.status.value}")
