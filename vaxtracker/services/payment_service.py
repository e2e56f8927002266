"""
Payment Service - mock QR payment lifecycle tied to appointment status.

Confirmation writes two records in a fixed order: the payment is committed
as CONFIRMED first, then the appointment moves SCHEDULED -> PAID in a second
commit. A crash between the two leaves a CONFIRMED payment next to a
SCHEDULED appointment, which ``reconcile_confirmed_payments`` repairs.
The confirmation email is queued to run after the response.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from fastapi import BackgroundTasks
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..core.exceptions import AuthorizationError, ConflictError, NotFoundError
from ..core.slots import to_iso
from ..models.appointment import Appointment, AppointmentStatus, NoteAuthor, append_note
from ..models.payment import Payment, PaymentMethod, PaymentStatus, generate_reference
from ..models.user import User
from .booking_service import transition_appointment
from .notification_service import NotificationService

logger = logging.getLogger(__name__)

MAX_REFERENCE_ATTEMPTS = 3

@dataclass
class PaymentInitiation:
    payment: Payment
    qr_payload: str

@dataclass
class PaymentConfirmation:
    payment: Payment
    appointment_status: Optional[AppointmentStatus]

def build_qr_payload(payment: Payment) -> str:
    return f"VXPAY|{payment.reference}|{payment.amount:.2f}|{payment.appointment_id}"

class PaymentService:
    def __init__(
        self,
        db: Session,
        notifier: NotificationService,
        background_tasks: Optional[BackgroundTasks] = None,
    ):
        self.db = db
        self.notifier = notifier
        self.background_tasks = background_tasks

    def initiate(self, appointment_id: int, patient: User) -> PaymentInitiation:
        """Create, or reuse, the single PENDING payment for a SCHEDULED appointment."""
        if not patient.is_approved:
            raise AuthorizationError("user not approved yet")

        appointment = self.db.query(Appointment).filter(Appointment.id == appointment_id).first()
        if not appointment:
            raise NotFoundError("appointment not found")
        if appointment.patient_id != patient.id:
            raise AuthorizationError("not your appointment")
        if appointment.status != AppointmentStatus.SCHEDULED:
            raise ConflictError(f"cannot initiate payment for status {appointment.status.value}")

        payment = self._find_pending(appointment.id)
        attempts = 0
        while payment is None:
            attempts += 1
            payment = Payment(
                appointment_id=appointment.id,
                patient_id=patient.id,
                amount=appointment.charges,
                method=PaymentMethod.QR,
                reference=generate_reference(),
                status=PaymentStatus.PENDING,
                hospital_name=appointment.hospital.name if appointment.hospital else "",
                vaccine_name=appointment.vaccine.name if appointment.vaccine else "",
                dose_number=appointment.dose_number,
            )
            self.db.add(payment)
            try:
                self.db.commit()
            except IntegrityError:
                # Either a concurrent initiate won the pending slot or the reference collided
                self.db.rollback()
                payment = self._find_pending(appointment.id)
                if payment is None and attempts >= MAX_REFERENCE_ATTEMPTS:
                    raise
                continue
            self.db.refresh(payment)
            logger.info(f"Payment {payment.reference} initiated for appointment {appointment.id}")

        return PaymentInitiation(payment=payment, qr_payload=build_qr_payload(payment))

    def confirm(self, reference: str, patient: User) -> PaymentConfirmation:
        """
        Confirm a PENDING payment and mark its appointment PAID.

        Re-confirming a CONFIRMED payment returns the same result and writes
        nothing.
        """
        payment = self.db.query(Payment).filter(
            Payment.reference == reference,
            Payment.patient_id == patient.id,
        ).first()
        if not payment:
            raise NotFoundError("payment not found")

        if payment.status == PaymentStatus.CONFIRMED:
            return self._confirmation(payment)
        if payment.status != PaymentStatus.PENDING:
            raise ConflictError(f"payment already {payment.status.value}")

        # Phase 1: payment -> CONFIRMED, guarded on still being PENDING
        updated = self.db.query(Payment).filter(
            Payment.id == payment.id,
            Payment.status == PaymentStatus.PENDING,
        ).update(
            {Payment.status: PaymentStatus.CONFIRMED, Payment.confirmed_at: datetime.utcnow()},
            synchronize_session=False,
        )
        if updated != 1:
            self.db.rollback()
            self.db.refresh(payment)
            if payment.status == PaymentStatus.CONFIRMED:
                return self._confirmation(payment)
            raise ConflictError(f"payment already {payment.status.value}")
        self.db.commit()

        # Phase 2: appointment SCHEDULED -> PAID
        self._mark_appointment_paid(payment.appointment_id, "Payment confirmed (mock)")

        self.db.refresh(payment)
        logger.info(f"Payment {payment.reference} confirmed")
        self._notify_confirmed(payment, patient)
        return self._confirmation(payment)

    def list_for_patient(self, patient_id: int) -> List[Payment]:
        return self.db.query(Payment).filter(
            Payment.patient_id == patient_id
        ).order_by(Payment.created_at.desc(), Payment.id.desc()).all()

    def reconcile_confirmed_payments(self) -> List[int]:
        """Repair CONFIRMED payments whose appointment is still SCHEDULED."""
        stranded = self.db.query(Payment).join(
            Appointment, Payment.appointment_id == Appointment.id
        ).filter(
            Payment.status == PaymentStatus.CONFIRMED,
            Appointment.status == AppointmentStatus.SCHEDULED,
        ).all()

        repaired = []
        for payment in stranded:
            if self._mark_appointment_paid(payment.appointment_id, "Payment reconciled"):
                logger.warning(
                    f"Reconciled appointment {payment.appointment_id} "
                    f"from confirmed payment {payment.reference}"
                )
                repaired.append(payment.appointment_id)
        return repaired

    def _mark_appointment_paid(self, appointment_id: int, message: str) -> bool:
        if not transition_appointment(
            self.db, appointment_id, (AppointmentStatus.SCHEDULED,), AppointmentStatus.PAID
        ):
            return False
        appointment = self.db.query(Appointment).filter(Appointment.id == appointment_id).one()
        append_note(appointment, NoteAuthor.SYSTEM, message)
        self.db.commit()
        return True

    def _find_pending(self, appointment_id: int) -> Optional[Payment]:
        return self.db.query(Payment).filter(
            Payment.appointment_id == appointment_id,
            Payment.status == PaymentStatus.PENDING,
        ).first()

    def _confirmation(self, payment: Payment) -> PaymentConfirmation:
        appointment = self.db.query(Appointment).filter(Appointment.id == payment.appointment_id).first()
        return PaymentConfirmation(
            payment=payment,
            appointment_status=appointment.status if appointment else None,
        )

    def _notify_confirmed(self, payment: Payment, patient: User):
        appointment = payment.appointment
        message = dict(
            patient_email=patient.email,
            patient_name=patient.name,
            reference=payment.reference,
            amount=payment.amount,
            appointment_id=payment.appointment_id,
            start_at_iso=to_iso(appointment.start_at) if appointment else "-",
            hospital_name=payment.hospital_name,
            vaccine_name=payment.vaccine_name,
        )
        if self.background_tasks is not None:
            self.background_tasks.add_task(send_payment_notice, self.notifier, message)
        else:
            send_payment_notice(self.notifier, message)

def send_payment_notice(notifier: NotificationService, message: dict):
    try:
        notifier.notify_payment_confirmed(**message)
    except Exception as e:
        logger.warning(f"notify_payment_confirmed failed for {message.get('reference')}: {e}")
