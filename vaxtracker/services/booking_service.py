import logging
from typing import Iterable, List, Optional

from fastapi import BackgroundTasks
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..core.config import Settings
from ..core.exceptions import AuthorizationError, ConflictError, InvalidInputError, NotFoundError
from ..core.slots import clamp_to_window, parse_instant, to_iso
from ..models.appointment import (
    Appointment, AppointmentStatus, NoteAuthor, CANCELLABLE_STATUSES, append_note,
)
from ..models.hospital import Hospital
from ..models.payment import Payment, PaymentStatus
from ..models.user import User
from ..models.vaccine import Vaccine
from .availability_service import AvailabilityService
from .dose_sequencer import DoseCeilingExceeded, next_dose_number
from .notification_service import NotificationService

logger = logging.getLogger(__name__)

SLOT_INDEX_NAME = "uq_appointment_hospital_slot_active"

def is_slot_conflict(exc: IntegrityError) -> bool:
    """True when an IntegrityError comes from the one-booking-per-slot index."""
    orig = getattr(exc, "orig", None)
    diag = getattr(orig, "diag", None)
    constraint_name = getattr(diag, "constraint_name", None) if diag is not None else None
    if constraint_name:
        return constraint_name == SLOT_INDEX_NAME

    text = str(orig if orig is not None else exc)
    # SQLite reports the columns rather than the index name
    return SLOT_INDEX_NAME in text or (
        "appointments.hospital_id" in text and "appointments.start_at" in text
    )

def transition_appointment(
    db: Session,
    appointment_id: int,
    from_statuses: Iterable[AppointmentStatus],
    to_status: AppointmentStatus,
) -> bool:
    """
    Compare-and-set status update in a single statement.

    Returns False, without writing, when the appointment is no longer in one
    of ``from_statuses``. The caller commits.
    """
    updated = db.query(Appointment).filter(
        Appointment.id == appointment_id,
        Appointment.status.in_(tuple(from_statuses)),
    ).update({Appointment.status: to_status}, synchronize_session=False)
    return updated == 1

def cancel_appointment(
    db: Session,
    appointment: Appointment,
    to_status: AppointmentStatus,
    by: NoteAuthor,
    message: str,
) -> Appointment:
    """Cancel (or mark no-show) a live appointment and fail its open payment attempts."""
    if not transition_appointment(db, appointment.id, CANCELLABLE_STATUSES, to_status):
        db.rollback()
        db.refresh(appointment)
        raise ConflictError(f"cannot change appointment in status {appointment.status.value}")

    db.query(Payment).filter(
        Payment.appointment_id == appointment.id,
        Payment.status == PaymentStatus.PENDING,
    ).update({Payment.status: PaymentStatus.FAILED}, synchronize_session=False)

    append_note(appointment, by, message)
    db.commit()
    db.refresh(appointment)
    logger.info(f"Appointment {appointment.id} -> {to_status.value}")
    return appointment

class BookingService:
    def __init__(
        self,
        db: Session,
        settings: Settings,
        notifier: NotificationService,
        background_tasks: Optional[BackgroundTasks] = None,
    ):
        self.db = db
        self.settings = settings
        self.notifier = notifier
        # When given, emails go out after the response is sent
        self.background_tasks = background_tasks

    def book(self, patient: User, hospital_id: int, vaccine_id: int, start_at: str) -> Appointment:
        """
        Validate and persist a booking.

        Checks run in a fixed order (approval, hospital, vaccine, time,
        dose ceiling). The insert itself is the serialization point: the
        partial unique index lets exactly one concurrent caller win a slot.
        """
        if not patient.is_approved:
            raise AuthorizationError("user not approved yet")

        hospital = AvailabilityService(self.db, self.settings).get_hospital_for_booking(hospital_id)

        vaccine = self.db.query(Vaccine).filter(Vaccine.id == vaccine_id).first()
        if not vaccine:
            raise NotFoundError("vaccine not found")

        tz = self.settings.SERVICE_TIMEZONE
        try:
            start = parse_instant(start_at, tz)
        except ValueError:
            raise InvalidInputError("invalid startAt")

        slot = clamp_to_window(
            start,
            self.settings.SLOT_MINUTES,
            tz,
            start_hour=self.settings.WINDOW_START_HOUR,
            end_hour=self.settings.WINDOW_END_HOUR,
        )
        if not slot:
            raise InvalidInputError(
                f"startAt outside allowed window "
                f"({self.settings.WINDOW_START_HOUR:02d}:00-{self.settings.WINDOW_END_HOUR:02d}:00)"
            )

        try:
            dose_number = next_dose_number(self.db, patient.id, vaccine)
        except DoseCeilingExceeded:
            raise ConflictError("all required doses already completed")

        # Snapshot charges so later price edits do not touch this booking
        charges = round(float(hospital.charge or 0) + float(vaccine.price or 0), 2)

        appointment = Appointment(
            patient_id=patient.id,
            hospital_id=hospital.id,
            vaccine_id=vaccine.id,
            start_at=slot.start_at,
            end_at=slot.end_at,
            duration_min=slot.duration_min,
            dose_number=dose_number,
            doses_required=vaccine.doses_required,
            charges=charges,
            status=AppointmentStatus.SCHEDULED,
        )
        append_note(appointment, NoteAuthor.SYSTEM, "Booked by patient")
        self.db.add(appointment)

        try:
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            if is_slot_conflict(exc):
                logger.info(f"Slot conflict: hospital={hospital_id} start_at={to_iso(slot.start_at)}")
                raise ConflictError("slot already booked") from exc
            raise

        self.db.refresh(appointment)
        logger.info(
            f"Appointment {appointment.id} booked: patient={patient.id} hospital={hospital.id} "
            f"start_at={to_iso(appointment.start_at)} dose={dose_number}/{vaccine.doses_required}"
        )

        self._notify_booking(appointment, patient, hospital, vaccine)
        return appointment

    def list_for_patient(self, patient_id: int) -> List[Appointment]:
        return self.db.query(Appointment).filter(
            Appointment.patient_id == patient_id
        ).order_by(Appointment.start_at.asc(), Appointment.id.asc()).all()

    def cancel(self, appointment_id: int, patient: User) -> Appointment:
        appointment = self.db.query(Appointment).filter(Appointment.id == appointment_id).first()
        if not appointment:
            raise NotFoundError("appointment not found")
        if appointment.patient_id != patient.id:
            raise AuthorizationError("not your appointment")

        return cancel_appointment(
            self.db,
            appointment,
            AppointmentStatus.CANCELLED_PATIENT,
            NoteAuthor.PATIENT,
            "Cancelled by patient",
        )

    def _notify_booking(self, appointment: Appointment, patient: User, hospital: Hospital, vaccine: Vaccine):
        # Plain values only: the request session is closed when a queued task runs
        message = dict(
            patient_email=patient.email,
            patient_name=patient.name,
            hospital_name=hospital.name,
            vaccine_name=vaccine.name,
            appointment_id=appointment.id,
            start_at_iso=to_iso(appointment.start_at),
            dose_number=appointment.dose_number,
            doses_required=appointment.doses_required,
            charges=appointment.charges,
        )
        if self.background_tasks is not None:
            self.background_tasks.add_task(send_booking_notice, self.notifier, message)
        else:
            send_booking_notice(self.notifier, message)

def send_booking_notice(notifier: NotificationService, message: dict):
    """Send the booking email. Not part of the booking transaction; failures are only logged."""
    try:
        notifier.notify_booking(**message)
    except Exception as e:
        logger.warning(f"notify_booking failed for appointment {message.get('appointment_id')}: {e}")
