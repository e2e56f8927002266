from datetime import datetime

from sqlalchemy import (
    Column, Integer, String, ForeignKey, DateTime, Numeric, Index, UniqueConstraint,
    CheckConstraint, text, Enum as SQLEnum,
)
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
import enum

from ..core.database import Base

class AppointmentStatus(str, enum.Enum):
    SCHEDULED = "SCHEDULED"
    PAID = "PAID"
    COMPLETED = "COMPLETED"
    CANCELLED_PATIENT = "CANCELLED_PATIENT"
    CANCELLED_ADMIN = "CANCELLED_ADMIN"
    NO_SHOW = "NO_SHOW"

# Statuses that occupy a slot
BLOCKING_STATUSES = (
    AppointmentStatus.SCHEDULED,
    AppointmentStatus.PAID,
    AppointmentStatus.COMPLETED,
)

# Statuses from which a patient or admin may still cancel
CANCELLABLE_STATUSES = (
    AppointmentStatus.SCHEDULED,
    AppointmentStatus.PAID,
)

class NoteAuthor(str, enum.Enum):
    SYSTEM = "system"
    PATIENT = "patient"
    ADMIN = "admin"

_blocking_clause = text(
    "status IN ({})".format(", ".join(f"'{s.name}'" for s in BLOCKING_STATUSES))
)

class Appointment(Base):
    __tablename__ = "appointments"
    __table_args__ = (
        # One live booking per hospital slot; cancelled rows drop out of the index
        Index(
            "uq_appointment_hospital_slot_active",
            "hospital_id",
            "start_at",
            unique=True,
            postgresql_where=_blocking_clause,
            sqlite_where=_blocking_clause,
        ),
        CheckConstraint(
            "dose_number >= 1 AND dose_number <= doses_required",
            name="ck_appointment_dose_number_range",
        ),
    )

    id = Column(Integer, primary_key=True, index=True)

    # Relationships
    patient_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    hospital_id = Column(Integer, ForeignKey("hospitals.id"), nullable=False)
    vaccine_id = Column(Integer, ForeignKey("vaccines.id"), nullable=False)

    # Slot (naive UTC)
    start_at = Column(DateTime, nullable=False, index=True)
    end_at = Column(DateTime, nullable=False)
    duration_min = Column(Integer, nullable=False, default=30)

    # Snapshots taken at booking time
    dose_number = Column(Integer, nullable=False)
    doses_required = Column(Integer, nullable=False)
    charges = Column(Numeric(10, 2, asdecimal=False), nullable=False, default=0)

    status = Column(SQLEnum(AppointmentStatus), nullable=False, default=AppointmentStatus.SCHEDULED)

    # Tracking
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    # Relationships
    patient = relationship("User", back_populates="appointments")
    hospital = relationship("Hospital", back_populates="appointments")
    vaccine = relationship("Vaccine", back_populates="appointments")
    notes = relationship(
        "AppointmentNote",
        back_populates="appointment",
        order_by="AppointmentNote.position",
        cascade="all, delete-orphan",
    )

    def __repr__(self):
        return f"<Appointment(id={self.id}, hospital_id={self.hospital_id}, start_at='{self.start_at}', status='{self.status}')>"

class AppointmentNote(Base):
    __tablename__ = "appointment_notes"
    __table_args__ = (
        UniqueConstraint("appointment_id", "position", name="uq_appointment_note_position"),
    )

    id = Column(Integer, primary_key=True, index=True)
    appointment_id = Column(Integer, ForeignKey("appointments.id"), nullable=False, index=True)
    position = Column(Integer, nullable=False)
    at = Column(DateTime, nullable=False, default=datetime.utcnow)
    by = Column(SQLEnum(NoteAuthor), nullable=False, default=NoteAuthor.SYSTEM)
    message = Column(String(500), nullable=False)

    appointment = relationship("Appointment", back_populates="notes")

def append_note(appointment: Appointment, by: NoteAuthor, message: str) -> AppointmentNote:
    """Append an audit note; notes are never edited or removed."""
    note = AppointmentNote(
        position=len(appointment.notes),
        at=datetime.utcnow(),
        by=by,
        message=message,
    )
    appointment.notes.append(note)
    return note
