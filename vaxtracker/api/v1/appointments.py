from fastapi import APIRouter, BackgroundTasks, Depends, Query, status
from sqlalchemy.orm import Session

from ...core.config import Settings, get_settings
from ...core.database import get_db
from ...core.exceptions import InvalidInputError
from ...core.slots import parse_day
from ...api.deps import get_patient_user, get_notifier
from ...models.user import User
from ...schemas.appointment import (
    AppointmentCreate, AppointmentList, AppointmentResponse, AvailabilityResponse, SlotResponse,
)
from ...services.availability_service import AvailabilityService
from ...services.booking_service import BookingService
from ...services.notification_service import NotificationService

router = APIRouter(tags=["Appointments"])

@router.get("/availability", response_model=AvailabilityResponse)
def get_availability(
    hospital_id: int = Query(..., alias="hospitalId"),
    date: str = Query(..., description="YYYY-MM-DD"),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """Open slots for an approved hospital on a given day."""
    availability_service = AvailabilityService(db, settings)
    # Unknown or unapproved hospital wins over a bad date
    hospital = availability_service.get_hospital_for_booking(hospital_id)

    try:
        day = parse_day(date)
    except ValueError:
        raise InvalidInputError("invalid date")

    slots = availability_service.get_available_slots(hospital, day)
    return AvailabilityResponse(
        hospital_id=hospital_id,
        date=day,
        available=[SlotResponse.model_validate(slot) for slot in slots],
    )

@router.post("/appointments", response_model=AppointmentResponse, status_code=status.HTTP_201_CREATED)
def create_appointment(
    payload: AppointmentCreate,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(get_patient_user),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    notifier: NotificationService = Depends(get_notifier),
):
    """Book a slot for the calling patient."""
    booking_service = BookingService(db, settings, notifier, background_tasks)
    appointment = booking_service.book(
        current_user, payload.hospital_id, payload.vaccine_id, payload.start_at
    )
    return AppointmentResponse.model_validate(appointment)

@router.get("/appointments/my", response_model=AppointmentList)
def list_my_appointments(
    current_user: User = Depends(get_patient_user),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    notifier: NotificationService = Depends(get_notifier),
):
    """Caller's appointments in chronological order."""
    appointments = BookingService(db, settings, notifier).list_for_patient(current_user.id)
    return AppointmentList(
        appointments=[AppointmentResponse.model_validate(a) for a in appointments]
    )

@router.patch("/appointments/{appointment_id}/cancel", response_model=AppointmentResponse)
def cancel_appointment(
    appointment_id: int,
    current_user: User = Depends(get_patient_user),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    notifier: NotificationService = Depends(get_notifier),
):
    """Cancel one of the caller's appointments before it is completed."""
    appointment = BookingService(db, settings, notifier).cancel(appointment_id, current_user)
    return AppointmentResponse.model_validate(appointment)
