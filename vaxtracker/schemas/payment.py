from typing import List, Optional

from pydantic import Field

from ..models.appointment import AppointmentStatus
from ..models.payment import PaymentMethod, PaymentStatus
from .common import CamelModel, IsoInstant

class PaymentInitiateRequest(CamelModel):
    appointment_id: int

class PaymentConfirmRequest(CamelModel):
    reference: str = Field(..., min_length=1, max_length=32)

class PaymentResponse(CamelModel):
    id: int
    appointment_id: int
    patient_id: int
    amount: float
    method: PaymentMethod
    reference: str
    status: PaymentStatus
    confirmed_at: Optional[IsoInstant] = None
    hospital_name: Optional[str] = None
    vaccine_name: Optional[str] = None
    dose_number: Optional[int] = None

class PaymentInitiateResponse(CamelModel):
    payment: PaymentResponse
    qr_payload: str

class PaymentConfirmResponse(CamelModel):
    payment: PaymentResponse
    appointment_status: Optional[AppointmentStatus] = None

class PaymentList(CamelModel):
    payments: List[PaymentResponse]

class ReconcileResponse(CamelModel):
    repaired: int
    appointment_ids: List[int]
