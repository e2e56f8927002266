from fastapi import APIRouter, BackgroundTasks, Depends, status
from sqlalchemy.orm import Session

from ...core.database import get_db
from ...api.deps import get_patient_user, get_notifier
from ...models.user import User
from ...schemas.payment import (
    PaymentConfirmRequest, PaymentConfirmResponse, PaymentInitiateRequest,
    PaymentInitiateResponse, PaymentList, PaymentResponse,
)
from ...services.notification_service import NotificationService
from ...services.payment_service import PaymentService

router = APIRouter(prefix="/payments", tags=["Payments"])

@router.post("/initiate", response_model=PaymentInitiateResponse, status_code=status.HTTP_201_CREATED)
def initiate_payment(
    payload: PaymentInitiateRequest,
    current_user: User = Depends(get_patient_user),
    db: Session = Depends(get_db),
    notifier: NotificationService = Depends(get_notifier),
):
    """Start (or resume) the mock QR payment for a scheduled appointment."""
    result = PaymentService(db, notifier).initiate(payload.appointment_id, current_user)
    return PaymentInitiateResponse(
        payment=PaymentResponse.model_validate(result.payment),
        qr_payload=result.qr_payload,
    )

@router.post("/confirm", response_model=PaymentConfirmResponse)
def confirm_payment(
    payload: PaymentConfirmRequest,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(get_patient_user),
    db: Session = Depends(get_db),
    notifier: NotificationService = Depends(get_notifier),
):
    """Confirm a payment by reference (simulates the QR callback)."""
    result = PaymentService(db, notifier, background_tasks).confirm(payload.reference, current_user)
    return PaymentConfirmResponse(
        payment=PaymentResponse.model_validate(result.payment),
        appointment_status=result.appointment_status,
    )

@router.get("/my", response_model=PaymentList)
def list_my_payments(
    current_user: User = Depends(get_patient_user),
    db: Session = Depends(get_db),
    notifier: NotificationService = Depends(get_notifier),
):
    """Caller's payments, newest first."""
    payments = PaymentService(db, notifier).list_for_patient(current_user.id)
    return PaymentList(payments=[PaymentResponse.model_validate(p) for p in payments])
