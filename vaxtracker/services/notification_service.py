"""
Notification Service - booking and payment emails.

Sending is best-effort: every public method returns a result dict and never
raises into the booking or payment flow.
"""
import logging
import smtplib
from email.message import EmailMessage
from typing import Any, Dict, Optional

from ..core.config import Settings

logger = logging.getLogger(__name__)

class NotificationService:
    def __init__(self, settings: Settings):
        self.settings = settings

    def notify_booking(
        self,
        *,
        patient_email: Optional[str],
        patient_name: Optional[str],
        hospital_name: str,
        vaccine_name: str,
        appointment_id: int,
        start_at_iso: str,
        dose_number: int,
        doses_required: int,
        charges: float,
    ) -> Dict[str, Any]:
        if not patient_email:
            return {"ok": False, "reason": "missing patient email"}

        subject = f"Your vaccine appointment is scheduled ({start_at_iso})"
        text = "\n".join([
            f"Hi {patient_name or 'there'},",
            "",
            "Your appointment has been scheduled:",
            f"- Hospital: {hospital_name}",
            f"- Vaccine:  {vaccine_name}",
            f"- When:     {start_at_iso}",
            f"- Dose:     {dose_number} of {doses_required}",
            f"- Charges:  ${charges:.2f}",
            "",
            f"Appointment ID: {appointment_id}",
            "",
            "Thank you!",
        ])
        return self._safe_send(patient_email, subject, text)

    def notify_payment_confirmed(
        self,
        *,
        patient_email: Optional[str],
        patient_name: Optional[str],
        reference: str,
        amount: float,
        appointment_id: int,
        start_at_iso: str,
        hospital_name: Optional[str],
        vaccine_name: Optional[str],
    ) -> Dict[str, Any]:
        if not patient_email:
            return {"ok": False, "reason": "missing patient email"}

        subject = f"Payment confirmed - Ref {reference}"
        text = "\n".join([
            f"Hi {patient_name or 'there'},",
            "",
            "We received your payment.",
            f"- Amount:   ${amount:.2f}",
            f"- Ref:      {reference}",
            "",
            "Appointment:",
            f"- ID:       {appointment_id}",
            f"- When:     {start_at_iso}",
            f"- Hospital: {hospital_name or '-'}",
            f"- Vaccine:  {vaccine_name or '-'}",
            "",
            "See you at your appointment!",
        ])
        return self._safe_send(patient_email, subject, text)

    def _safe_send(self, to: str, subject: str, text: str) -> Dict[str, Any]:
        try:
            return self.send_mail(to, subject, text)
        except Exception as e:
            logger.warning(f"Notification to {to} failed: {e}")
            return {"ok": False, "reason": str(e)}

    def send_mail(self, to: str, subject: str, text: str) -> Dict[str, Any]:
        if not to or not subject:
            raise ValueError("to and subject are required")

        if not self.settings.MAIL_ENABLED:
            logger.info(f"[MOCK EMAIL] to={to} subject={subject!r}\n{text}")
            return {"ok": True, "mock": True}

        if not self.settings.SMTP_HOST:
            raise RuntimeError("MAIL_ENABLED is set but SMTP_HOST is not configured")

        msg = EmailMessage()
        msg["From"] = self.settings.MAIL_FROM
        msg["To"] = to
        msg["Subject"] = subject
        msg.set_content(text)

        with smtplib.SMTP(self.settings.SMTP_HOST, self.settings.SMTP_PORT, timeout=10) as smtp:
            smtp.starttls()
            if self.settings.SMTP_USER:
                smtp.login(self.settings.SMTP_USER, self.settings.SMTP_PASSWORD or "")
            smtp.send_message(msg)

        return {"ok": True, "mock": False}
