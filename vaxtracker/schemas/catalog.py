from typing import List, Optional

from pydantic import Field

from ..models.hospital import HospitalType
from .common import CamelModel

class HospitalCreate(CamelModel):
    name: str = Field(..., min_length=1, max_length=200)
    address: str = Field(..., min_length=1, max_length=255)
    type: HospitalType
    charge: float = Field(0, ge=0)
    contact: Optional[str] = Field(None, max_length=100)
    is_approved: bool = False

class HospitalResponse(CamelModel):
    id: int
    name: str
    address: str
    type: HospitalType
    charge: float
    contact: Optional[str] = None
    is_approved: bool

class HospitalSummary(CamelModel):
    id: int
    name: str
    address: str
    type: HospitalType

class HospitalList(CamelModel):
    hospitals: List[HospitalResponse]

class VaccineCreate(CamelModel):
    name: str = Field(..., min_length=1, max_length=200)
    type: str = Field(..., min_length=1, max_length=100)
    price: float = Field(0, ge=0)
    doses_required: int = Field(..., ge=1)
    origin: Optional[str] = Field(None, max_length=100)
    other_info: Optional[str] = None

class VaccineResponse(CamelModel):
    id: int
    name: str
    type: str
    price: float
    doses_required: int
    origin: Optional[str] = None
    other_info: Optional[str] = None

class VaccineSummary(CamelModel):
    id: int
    name: str
    type: str
    doses_required: int

class VaccineList(CamelModel):
    vaccines: List[VaccineResponse]
