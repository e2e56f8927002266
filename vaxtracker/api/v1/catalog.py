from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ...core.database import get_db
from ...core.exceptions import NotFoundError
from ...models.hospital import Hospital
from ...models.vaccine import Vaccine
from ...schemas.catalog import HospitalList, HospitalResponse, VaccineList, VaccineResponse

router = APIRouter(tags=["Catalog"])

@router.get("/hospitals", response_model=HospitalList)
def list_hospitals(db: Session = Depends(get_db)):
    hospitals = db.query(Hospital).order_by(Hospital.name.asc()).all()
    return HospitalList(hospitals=[HospitalResponse.model_validate(h) for h in hospitals])

@router.get("/hospitals/{hospital_id}", response_model=HospitalResponse)
def get_hospital(hospital_id: int, db: Session = Depends(get_db)):
    hospital = db.query(Hospital).filter(Hospital.id == hospital_id).first()
    if not hospital:
        raise NotFoundError("hospital not found")
    return HospitalResponse.model_validate(hospital)

@router.get("/vaccines", response_model=VaccineList)
def list_vaccines(db: Session = Depends(get_db)):
    vaccines = db.query(Vaccine).order_by(Vaccine.name.asc()).all()
    return VaccineList(vaccines=[VaccineResponse.model_validate(v) for v in vaccines])

@router.get("/vaccines/{vaccine_id}", response_model=VaccineResponse)
def get_vaccine(vaccine_id: int, db: Session = Depends(get_db)):
    vaccine = db.query(Vaccine).filter(Vaccine.id == vaccine_id).first()
    if not vaccine:
        raise NotFoundError("vaccine not found")
    return VaccineResponse.model_validate(vaccine)
