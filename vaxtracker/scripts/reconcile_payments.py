"""
Repair appointments left SCHEDULED after their payment was confirmed.

Run periodically or after an incident:

    python -m vaxtracker.scripts.reconcile_payments
"""
import logging

from vaxtracker.core.config import settings
from vaxtracker.core.database import SessionLocal
from vaxtracker.services.notification_service import NotificationService
from vaxtracker.services.payment_service import PaymentService

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

def main() -> int:
    db = SessionLocal()
    try:
        repaired = PaymentService(db, NotificationService(settings)).reconcile_confirmed_payments()
    finally:
        db.close()

    logger.info(f"Reconciliation finished: {len(repaired)} appointment(s) repaired {repaired}")
    return len(repaired)

if __name__ == "__main__":
    main()
