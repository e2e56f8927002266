from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, Numeric, Index, text, Enum as SQLEnum
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
import enum
import secrets

from ..core.database import Base

class PaymentMethod(str, enum.Enum):
    QR = "QR"

class PaymentStatus(str, enum.Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"  # terminal "paid" state
    FAILED = "FAILED"

def generate_reference() -> str:
    """Opaque payment reference, e.g. ``A1B2C3D4E5F6``."""
    return secrets.token_hex(6).upper()

_pending_clause = text(f"status = '{PaymentStatus.PENDING.name}'")

class Payment(Base):
    __tablename__ = "payments"
    __table_args__ = (
        # At most one open attempt per appointment
        Index(
            "uq_payment_appointment_pending",
            "appointment_id",
            unique=True,
            postgresql_where=_pending_clause,
            sqlite_where=_pending_clause,
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    appointment_id = Column(Integer, ForeignKey("appointments.id"), nullable=False, index=True)
    patient_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    amount = Column(Numeric(10, 2, asdecimal=False), nullable=False)
    method = Column(SQLEnum(PaymentMethod), nullable=False, default=PaymentMethod.QR)

    # Mock QR flow
    reference = Column(String(32), unique=True, nullable=False, default=generate_reference)
    status = Column(SQLEnum(PaymentStatus), nullable=False, default=PaymentStatus.PENDING, index=True)
    confirmed_at = Column(DateTime, nullable=True)

    # Snapshot info
    hospital_name = Column(String(200), nullable=True)
    vaccine_name = Column(String(200), nullable=True)
    dose_number = Column(Integer, nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    appointment = relationship("Appointment")

    def __repr__(self):
        return f"<Payment(id={self.id}, reference='{self.reference}', status='{self.status}')>"
