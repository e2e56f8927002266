"""
Reset the database and load development data.

    python -m vaxtracker.scripts.seed
"""
import logging

from vaxtracker.core.database import Base, SessionLocal, engine, init_db
from vaxtracker.core.security import UserRole, get_password_hash
from vaxtracker.models import appointment, payment  # noqa: F401
from vaxtracker.models.hospital import Hospital, HospitalType
from vaxtracker.models.user import User
from vaxtracker.models.vaccine import Vaccine

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

HOSPITALS = [
    ("Denver General Hospital", "123 Civic Center Dr, Denver, CO", HospitalType.GOVT, 0, "(303) 555-0101"),
    ("Rocky Mountain Medical Center", "456 Alpine Ave, Denver, CO", HospitalType.PRIVATE, 25, "(303) 555-0102"),
    ("Aurora Community Clinic", "789 Prairie Rd, Aurora, CO", HospitalType.GOVT, 0, "(720) 555-0103"),
    ("Mile High Care", "1010 Colfax Blvd, Denver, CO", HospitalType.PRIVATE, 30, "(303) 555-0104"),
]

VACCINES = [
    ("ImmunoX", "mRNA", 19.99, 2, "USA", "Store at 2-8C"),
    ("ViraShield", "Viral Vector", 14.5, 1, "UK", "Single dose option"),
    ("ProtecVax", "Protein Subunit", 16.0, 2, "Germany", "Good stability"),
    ("InactiSure", "Inactivated", 12.0, 2, "India", "Traditional platform"),
]

def seed():
    logger.info("Dropping and recreating all tables...")
    Base.metadata.drop_all(bind=engine)
    init_db()

    db = SessionLocal()
    try:
        db.add(User(
            email="admin@vax.local",
            password_hash=get_password_hash("Admin@123"),
            role=UserRole.ADMIN,
            name="Admin User",
            is_approved=True,
        ))
        # Approved so the dev patient can book right away
        db.add(User(
            email="patient@vax.local",
            password_hash=get_password_hash("Patient@123"),
            role=UserRole.PATIENT,
            name="Test Patient",
            age=28,
            is_approved=True,
        ))

        for name, address, kind, charge, contact in HOSPITALS:
            db.add(Hospital(
                name=name, address=address, type=kind, charge=charge,
                contact=contact, is_approved=True,
            ))

        for name, kind, price, doses, origin, info in VACCINES:
            db.add(Vaccine(
                name=name, type=kind, price=price, doses_required=doses,
                origin=origin, other_info=info,
            ))

        db.commit()
    finally:
        db.close()

    logger.info("Seed complete.")
    logger.info("Admin login: admin@vax.local / Admin@123")
    logger.info("Patient login: patient@vax.local / Patient@123")
    logger.info(f"Hospitals: {len(HOSPITALS)}, Vaccines: {len(VACCINES)}")

if __name__ == "__main__":
    seed()
