from sqlalchemy.orm import Session

from ..models.appointment import Appointment, AppointmentStatus
from ..models.vaccine import Vaccine

class DoseCeilingExceeded(Exception):
    """The patient already completed every dose the vaccine requires."""

    def __init__(self, completed: int, doses_required: int):
        self.completed = completed
        self.doses_required = doses_required
        super().__init__(f"{completed} of {doses_required} doses already completed")

def count_completed_doses(db: Session, patient_id: int, vaccine_id: int) -> int:
    return db.query(Appointment).filter(
        Appointment.patient_id == patient_id,
        Appointment.vaccine_id == vaccine_id,
        Appointment.status == AppointmentStatus.COMPLETED,
    ).count()

def next_dose_number(db: Session, patient_id: int, vaccine: Vaccine) -> int:
    """
    Dose number for a new booking, derived from completed history only.

    Raises DoseCeilingExceeded when it would pass ``vaccine.doses_required``.
    """
    completed = count_completed_doses(db, patient_id, vaccine.id)
    dose_number = completed + 1
    if dose_number > vaccine.doses_required:
        raise DoseCeilingExceeded(completed, vaccine.doses_required)
    return dose_number
