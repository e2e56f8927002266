from sqlalchemy import Column, Integer, String, DateTime, Numeric, Text, CheckConstraint
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship

from ..core.database import Base

class Vaccine(Base):
    __tablename__ = "vaccines"
    __table_args__ = (
        CheckConstraint("price >= 0", name="ck_vaccine_price_non_negative"),
        CheckConstraint("doses_required >= 1", name="ck_vaccine_doses_required_positive"),
    )

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(200), unique=True, nullable=False, index=True)
    type = Column(String(100), nullable=False)
    price = Column(Numeric(10, 2, asdecimal=False), nullable=False, default=0)
    # Dose ceiling for the sequencer
    doses_required = Column(Integer, nullable=False, default=1)
    origin = Column(String(100), nullable=True)
    other_info = Column(Text, nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    appointments = relationship("Appointment", back_populates="vaccine")

    def __repr__(self):
        return f"<Vaccine(id={self.id}, name='{self.name}', doses={self.doses_required})>"
