from datetime import date
from typing import List

from sqlalchemy.orm import Session

from ..core.config import Settings
from ..core.exceptions import AuthorizationError, InvalidInputError, NotFoundError
from ..core.slots import Slot, day_bounds, generate_slots
from ..models.appointment import Appointment, BLOCKING_STATUSES
from ..models.hospital import Hospital

class AvailabilityService:
    def __init__(self, db: Session, settings: Settings):
        self.db = db
        self.settings = settings

    def get_hospital_for_booking(self, hospital_id: int) -> Hospital:
        """Load a hospital that patients may see and book."""
        hospital = self.db.query(Hospital).filter(Hospital.id == hospital_id).first()
        if not hospital:
            raise NotFoundError("hospital not found")
        if not hospital.is_approved:
            raise AuthorizationError("hospital not approved")
        return hospital

    def get_available_slots(self, hospital: Hospital, day: date) -> List[Slot]:
        """Day's slot grid minus slots held by a blocking appointment."""
        try:
            slots = generate_slots(
                day,
                self.settings.SLOT_MINUTES,
                self.settings.SERVICE_TIMEZONE,
                stride_min=self.settings.SLOT_MINUTES,
                start_hour=self.settings.WINDOW_START_HOUR,
                end_hour=self.settings.WINDOW_END_HOUR,
            )
            day_start, day_next = day_bounds(day, self.settings.SERVICE_TIMEZONE)
        except OverflowError:
            # First or last representable day
            raise InvalidInputError("invalid date")

        rows = self.db.query(Appointment.start_at).filter(
            Appointment.hospital_id == hospital.id,
            Appointment.start_at >= day_start,
            Appointment.start_at < day_next,
            Appointment.status.in_(BLOCKING_STATUSES),
        ).all()
        busy = {row.start_at for row in rows}

        return [slot for slot in slots if slot.start_at not in busy]
