import logging
from typing import List

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..core.exceptions import ConflictError, NotFoundError
from ..core.security import UserRole
from ..models.appointment import Appointment, AppointmentStatus, NoteAuthor, append_note
from ..models.hospital import Hospital
from ..models.user import User
from ..models.vaccine import Vaccine
from ..schemas.catalog import HospitalCreate, VaccineCreate
from .booking_service import cancel_appointment, transition_appointment

logger = logging.getLogger(__name__)

class AdminService:
    def __init__(self, db: Session):
        self.db = db

    # Patients

    def list_pending_patients(self) -> List[User]:
        return self.db.query(User).filter(
            User.role == UserRole.PATIENT,
            User.is_approved == False,  # noqa: E712
        ).order_by(User.created_at.asc(), User.id.asc()).all()

    def approve_patient(self, user_id: int) -> User:
        patient = self.db.query(User).filter(
            User.id == user_id,
            User.role == UserRole.PATIENT,
        ).first()
        if not patient:
            raise NotFoundError("Patient not found")

        patient.is_approved = True
        self.db.commit()
        self.db.refresh(patient)
        logger.info(f"Patient {patient.id} approved")
        return patient

    # Catalog

    def create_hospital(self, data: HospitalCreate) -> Hospital:
        hospital = Hospital(**data.model_dump())
        self.db.add(hospital)
        self.db.commit()
        self.db.refresh(hospital)
        return hospital

    def approve_hospital(self, hospital_id: int) -> Hospital:
        hospital = self.db.query(Hospital).filter(Hospital.id == hospital_id).first()
        if not hospital:
            raise NotFoundError("hospital not found")

        hospital.is_approved = True
        self.db.commit()
        self.db.refresh(hospital)
        logger.info(f"Hospital {hospital.id} approved")
        return hospital

    def create_vaccine(self, data: VaccineCreate) -> Vaccine:
        vaccine = Vaccine(**data.model_dump())
        self.db.add(vaccine)
        try:
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            raise ConflictError("vaccine already exists") from exc
        self.db.refresh(vaccine)
        return vaccine

    # Appointments

    def list_pending_completion(self) -> List[Appointment]:
        return self.db.query(Appointment).filter(
            Appointment.status == AppointmentStatus.PAID
        ).order_by(Appointment.start_at.asc()).all()

    def complete(self, appointment_id: int) -> Appointment:
        """PAID -> COMPLETED. There is no path from SCHEDULED."""
        appointment = self._get_appointment(appointment_id)

        if not transition_appointment(
            self.db, appointment.id, (AppointmentStatus.PAID,), AppointmentStatus.COMPLETED
        ):
            self.db.rollback()
            self.db.refresh(appointment)
            raise ConflictError(f"cannot complete appointment in status {appointment.status.value}")

        append_note(appointment, NoteAuthor.ADMIN, "Marked as completed by admin")
        self.db.commit()
        self.db.refresh(appointment)
        logger.info(f"Appointment {appointment.id} completed (dose {appointment.dose_number})")
        return appointment

    def cancel(self, appointment_id: int) -> Appointment:
        return cancel_appointment(
            self.db,
            self._get_appointment(appointment_id),
            AppointmentStatus.CANCELLED_ADMIN,
            NoteAuthor.ADMIN,
            "Cancelled by admin",
        )

    def mark_no_show(self, appointment_id: int) -> Appointment:
        return cancel_appointment(
            self.db,
            self._get_appointment(appointment_id),
            AppointmentStatus.NO_SHOW,
            NoteAuthor.ADMIN,
            "Marked as no-show by admin",
        )

    def _get_appointment(self, appointment_id: int) -> Appointment:
        appointment = self.db.query(Appointment).filter(Appointment.id == appointment_id).first()
        if not appointment:
            raise NotFoundError("Appointment not found")
        return appointment
