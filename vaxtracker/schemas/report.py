import datetime
from typing import Dict, List

from .common import CamelModel

class DailyDoseCount(CamelModel):
    date: datetime.date
    count: int

class DosesPerDayResponse(CamelModel):
    series: List[DailyDoseCount]

class AgeBucket(CamelModel):
    label: str
    count: int

class DemographicsResponse(CamelModel):
    gender: Dict[str, int]
    age_buckets: List[AgeBucket]

class Coverage(CamelModel):
    total_registered: int
    vaccinated: int
    percent: int

class CoverageResponse(CamelModel):
    coverage: Coverage
