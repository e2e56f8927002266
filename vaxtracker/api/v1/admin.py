from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from ...core.config import Settings, get_settings
from ...core.database import get_db
from ...core.exceptions import InvalidInputError
from ...core.slots import parse_instant
from ...api.deps import get_admin_user, get_notifier
from ...schemas.appointment import AppointmentResponse
from ...schemas.auth import PatientApprovalResponse, UserResponse
from ...schemas.catalog import HospitalCreate, HospitalResponse, VaccineCreate, VaccineResponse
from ...schemas.payment import ReconcileResponse
from ...schemas.report import (
    AgeBucket, Coverage, CoverageResponse, DailyDoseCount, DemographicsResponse, DosesPerDayResponse,
)
from ...services.admin_service import AdminService
from ...services.notification_service import NotificationService
from ...services.payment_service import PaymentService
from ...services.report_service import ReportService

# Every route here requires an admin caller
router = APIRouter(prefix="/admin", tags=["Admin"], dependencies=[Depends(get_admin_user)])

@router.get("/pending-patients", response_model=List[UserResponse])
def list_pending_patients(db: Session = Depends(get_db)):
    patients = AdminService(db).list_pending_patients()
    return [UserResponse.model_validate(p) for p in patients]

@router.patch("/approve-patient/{user_id}", response_model=PatientApprovalResponse)
def approve_patient(user_id: int, db: Session = Depends(get_db)):
    patient = AdminService(db).approve_patient(user_id)
    return PatientApprovalResponse(
        message="Patient approved successfully",
        patient=UserResponse.model_validate(patient),
    )

@router.post("/hospitals", response_model=HospitalResponse, status_code=status.HTTP_201_CREATED)
def create_hospital(payload: HospitalCreate, db: Session = Depends(get_db)):
    return HospitalResponse.model_validate(AdminService(db).create_hospital(payload))

@router.patch("/hospitals/{hospital_id}/approve", response_model=HospitalResponse)
def approve_hospital(hospital_id: int, db: Session = Depends(get_db)):
    return HospitalResponse.model_validate(AdminService(db).approve_hospital(hospital_id))

@router.post("/vaccines", response_model=VaccineResponse, status_code=status.HTTP_201_CREATED)
def create_vaccine(payload: VaccineCreate, db: Session = Depends(get_db)):
    return VaccineResponse.model_validate(AdminService(db).create_vaccine(payload))

@router.get("/appointments/pending-completion", response_model=List[AppointmentResponse])
def list_pending_completion(db: Session = Depends(get_db)):
    appointments = AdminService(db).list_pending_completion()
    return [AppointmentResponse.model_validate(a) for a in appointments]

@router.patch("/appointments/{appointment_id}/complete", response_model=AppointmentResponse)
def complete_appointment(appointment_id: int, db: Session = Depends(get_db)):
    """Mark a paid appointment as administered."""
    return AppointmentResponse.model_validate(AdminService(db).complete(appointment_id))

@router.patch("/appointments/{appointment_id}/cancel", response_model=AppointmentResponse)
def cancel_appointment(appointment_id: int, db: Session = Depends(get_db)):
    return AppointmentResponse.model_validate(AdminService(db).cancel(appointment_id))

@router.patch("/appointments/{appointment_id}/no-show", response_model=AppointmentResponse)
def mark_no_show(appointment_id: int, db: Session = Depends(get_db)):
    return AppointmentResponse.model_validate(AdminService(db).mark_no_show(appointment_id))

@router.post("/payments/reconcile", response_model=ReconcileResponse)
def reconcile_payments(
    db: Session = Depends(get_db),
    notifier: NotificationService = Depends(get_notifier),
):
    """Move appointments with a confirmed payment but SCHEDULED status to PAID."""
    repaired = PaymentService(db, notifier).reconcile_confirmed_payments()
    return ReconcileResponse(repaired=len(repaired), appointment_ids=repaired)

# Reports

@router.get("/reports/doses-per-day", response_model=DosesPerDayResponse)
def doses_per_day(
    days: Optional[int] = Query(None, description="Days back from today, clamped to 1-90"),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """Completed doses per day, oldest first."""
    series = ReportService(db, settings).doses_per_day(days)
    return DosesPerDayResponse(
        series=[DailyDoseCount(date=day, count=count) for day, count in series]
    )

@router.get("/reports/demographics", response_model=DemographicsResponse)
def demographics(
    since: Optional[str] = Query(None, description="ISO-8601 instant"),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    since_at = None
    if since:
        try:
            since_at = parse_instant(since, settings.SERVICE_TIMEZONE)
        except ValueError:
            raise InvalidInputError("invalid since")

    gender, buckets = ReportService(db, settings).demographics(since_at)
    return DemographicsResponse(
        gender=gender,
        age_buckets=[AgeBucket(label=label, count=count) for label, count in buckets],
    )

@router.get("/reports/coverage", response_model=CoverageResponse)
def coverage(
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """Share of registered patients with at least one completed dose."""
    total_registered, vaccinated, percent = ReportService(db, settings).coverage()
    return CoverageResponse(coverage=Coverage(
        total_registered=total_registered, vaccinated=vaccinated, percent=percent,
    ))
