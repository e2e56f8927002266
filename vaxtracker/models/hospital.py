from sqlalchemy import Column, Integer, String, DateTime, Boolean, Numeric, CheckConstraint, Enum as SQLEnum
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
import enum

from ..core.database import Base

class HospitalType(str, enum.Enum):
    GOVT = "GOVT"
    PRIVATE = "PRIVATE"

class Hospital(Base):
    __tablename__ = "hospitals"
    __table_args__ = (
        CheckConstraint("charge >= 0", name="ck_hospital_charge_non_negative"),
    )

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(200), nullable=False, index=True)
    address = Column(String(255), nullable=False)
    type = Column(SQLEnum(HospitalType), nullable=False)
    # Base service charge per appointment
    charge = Column(Numeric(10, 2, asdecimal=False), nullable=False, default=0)
    contact = Column(String(100), nullable=True)
    # Unapproved hospitals are hidden from availability and booking
    is_approved = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    appointments = relationship("Appointment", back_populates="hospital")

    def __repr__(self):
        return f"<Hospital(id={self.id}, name='{self.name}', approved={self.is_approved})>"
