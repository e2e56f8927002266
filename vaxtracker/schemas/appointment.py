import datetime
from typing import List, Optional

from pydantic import Field

from ..models.appointment import AppointmentStatus, NoteAuthor
from .catalog import HospitalSummary, VaccineSummary
from .common import CamelModel, IsoInstant

class SlotResponse(CamelModel):
    start_at: IsoInstant
    end_at: IsoInstant
    duration_min: int

class AvailabilityResponse(CamelModel):
    hospital_id: int
    date: datetime.date
    available: List[SlotResponse]

class AppointmentCreate(CamelModel):
    hospital_id: int
    vaccine_id: int
    # Kept as text so a bad instant maps to InvalidInput rather than a schema error
    start_at: str = Field(..., min_length=1)

class AppointmentNoteResponse(CamelModel):
    at: IsoInstant
    by: NoteAuthor
    message: str

class AppointmentResponse(CamelModel):
    id: int
    patient_id: int
    hospital_id: int
    vaccine_id: int
    start_at: IsoInstant
    end_at: IsoInstant
    duration_min: int
    dose_number: int
    doses_required: int
    charges: float
    status: AppointmentStatus
    notes: List[AppointmentNoteResponse] = []
    hospital: Optional[HospitalSummary] = None
    vaccine: Optional[VaccineSummary] = None

class AppointmentList(CamelModel):
    appointments: List[AppointmentResponse]
