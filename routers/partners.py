from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from database import get_db
from models import Admin, Student
from routers.auth import get_current_admin, get_current_student
from utils.pairing import group_by_event
from utils.pairing_service import (
    clear_all_pairings,
    create_pairing,
    dates_for_student,
    edit_pairing,
    generate_pairings,
    list_partnerings,
    partnering_to_dict,
)


router = APIRouter(prefix="/partners", tags=["partners"])


class GenerateIn(BaseModel):
    eventId: Optional[int] = None


class CreatePairingIn(BaseModel):
    eventId: Optional[int] = None
    maleId: Optional[str] = None
    femaleIds: List[str] = []


class EditPairingIn(BaseModel):
    femaleIds: List[str] = []


@router.get("")
def get_partners(
    eventId: Optional[int] = None,
    db: Session = Depends(get_db),
    admin: Admin = Depends(get_current_admin),
):
    return {"ok": True, "partners": [partnering_to_dict(p) for p in list_partnerings(db, event_id=eventId)]}


@router.get("/grouped")
def get_partners_grouped(
    db: Session = Depends(get_db),
    admin: Admin = Depends(get_current_admin),
):
    groups = group_by_event(partnering_to_dict(p) for p in list_partnerings(db))
    return {"ok": True, "groups": {str(k): v for k, v in groups.items()}}


@router.get("/mine")
def get_my_dates(
    db: Session = Depends(get_db),
    student: Student = Depends(get_current_student),
):
    """Partners assigned to the signed-in student, per event."""
    return {"ok": True, "dates": dates_for_student(db, student)}


@router.post("/generate")
def generate(
    payload: GenerateIn,
    db: Session = Depends(get_db),
    admin: Admin = Depends(get_current_admin),
):
    created = generate_pairings(db, event_id=payload.eventId)
    return {
        "ok": True,
        "message": "Partners successfully generated!",
        "partners": [partnering_to_dict(p) for p in created],
    }


@router.post("")
def create(
    payload: CreatePairingIn,
    db: Session = Depends(get_db),
    admin: Admin = Depends(get_current_admin),
):
    p = create_pairing(db, event_id=payload.eventId, male_id=payload.maleId, female_ids=payload.femaleIds)
    return {"ok": True, "message": "Pairing created successfully!", "partner": partnering_to_dict(p)}


@router.put("/{partnering_id}")
def edit(
    partnering_id: int,
    payload: EditPairingIn,
    db: Session = Depends(get_db),
    admin: Admin = Depends(get_current_admin),
):
    p = edit_pairing(db, partnering_id=partnering_id, female_ids=payload.femaleIds)
    return {"ok": True, "message": "Partner updated successfully!", "partner": partnering_to_dict(p)}


@router.delete("")
def clear_all(
    confirm: bool = False,
    db: Session = Depends(get_db),
    admin: Admin = Depends(get_current_admin),
):
    removed = clear_all_pairings(db, confirm=confirm)
    if not removed:
        return {"ok": True, "deleted": 0, "message": "No partners to clear."}
    return {"ok": True, "deleted": removed, "message": "All partners cleared!"}
