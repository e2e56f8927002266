"""
Report Service - administered-dose statistics for the admin dashboard.

Only COMPLETED appointments count as administered doses.
"""
from collections import Counter
from datetime import date, datetime, timedelta
from typing import Dict, List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session

from ..core.config import Settings
from ..core.security import UserRole
from ..core.slots import day_bounds, local_day
from ..models.appointment import Appointment, AppointmentStatus
from ..models.user import User

DEFAULT_DAYS = 30
MAX_DAYS = 90

GENDERS = ("male", "female", "other", "unspecified")

# (label, min age, max age) inclusive
AGE_BUCKETS = (
    ("0-12", 0, 12),
    ("13-17", 13, 17),
    ("18-29", 18, 29),
    ("30-44", 30, 44),
    ("45-64", 45, 64),
    ("65+", 65, 200),
)

def clamp_days(days: Optional[int]) -> int:
    if not days:
        return DEFAULT_DAYS
    return max(1, min(MAX_DAYS, days))

def age_bucket(age: Optional[int]) -> Optional[str]:
    if age is None or age < 0:
        return None
    for label, low, high in AGE_BUCKETS:
        if low <= age <= high:
            return label
    return None

class ReportService:
    def __init__(self, db: Session, settings: Settings):
        self.db = db
        self.settings = settings

    def doses_per_day(self, days: Optional[int] = None, today: Optional[date] = None) -> List[Tuple[date, int]]:
        """
        Completed doses per service-zone day, oldest first.

        The series always has one entry per day of the range, zeros included.
        """
        tz = self.settings.SERVICE_TIMEZONE
        days = clamp_days(days)
        if today is None:
            today = local_day(datetime.utcnow(), tz)
        first_day = today - timedelta(days=days - 1)

        range_start, _ = day_bounds(first_day, tz)
        _, range_end = day_bounds(today, tz)

        rows = self.db.query(Appointment.start_at).filter(
            Appointment.status == AppointmentStatus.COMPLETED,
            Appointment.start_at >= range_start,
            Appointment.start_at < range_end,
        ).all()
        # Bucketed in Python so days follow the service zone on any backend
        counts = Counter(local_day(row.start_at, tz) for row in rows)

        return [
            (first_day + timedelta(days=offset), counts.get(first_day + timedelta(days=offset), 0))
            for offset in range(days)
        ]

    def demographics(self, since: Optional[datetime] = None) -> Tuple[Dict[str, int], List[Tuple[str, int]]]:
        """Gender counts and age buckets over patients' appointments, one entry per appointment."""
        base = self.db.query(Appointment).join(User, Appointment.patient_id == User.id).filter(
            User.role == UserRole.PATIENT
        )
        if since is not None:
            base = base.filter(Appointment.start_at >= since)

        gender = {g: 0 for g in GENDERS}
        gender_rows = base.with_entities(User.gender, func.count(Appointment.id)).group_by(User.gender).all()
        for value, count in gender_rows:
            key = (value or "unspecified").lower()
            gender[key if key in gender else "unspecified"] += count

        buckets = {label: 0 for label, _, _ in AGE_BUCKETS}
        age_rows = base.with_entities(User.age, func.count(Appointment.id)).group_by(User.age).all()
        for age, count in age_rows:
            label = age_bucket(age)
            if label:
                buckets[label] += count

        return gender, [(label, buckets[label]) for label, _, _ in AGE_BUCKETS]

    def coverage(self) -> Tuple[int, int, int]:
        """Registered patients, patients with a completed dose, and the rounded percentage."""
        total_registered = self.db.query(func.count(User.id)).filter(
            User.role == UserRole.PATIENT
        ).scalar() or 0

        vaccinated = self.db.query(func.count(func.distinct(Appointment.patient_id))).filter(
            Appointment.status == AppointmentStatus.COMPLETED
        ).scalar() or 0

        percent = int(vaccinated * 100 / total_registered + 0.5) if total_registered else 0
        return total_registered, vaccinated, percent
