from __future__ import annotations

import os
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from database import get_db
from logging_config import get_logger
from models import GENDER_FEMALE, GENDER_MALE, Admin, Announcement, Student
from routers.auth import get_current_admin
from utils.errors import DispatchError, NotFoundError, ValidationError
from utils.sms import send_sms


router = APIRouter(tags=["announcements"])
logger = get_logger("sms")

ANNOUNCEMENT_SENDER = os.getenv("SMS_ANNOUNCEMENT_SENDER", "BlindDate")

RECIPIENT_TYPES = {"individual", "all", "males", "females"}


class SmsIn(BaseModel):
    phone: Optional[str] = None
    message: Optional[str] = None


class AnnouncementIn(BaseModel):
    message: str
    recipientType: str = "individual"
    studentId: Optional[str] = None


def greeting_for(student: Student) -> str:
    return "Hi Mr." if (student.gender or "").upper() == GENDER_MALE else "Hi Miss"


def announcement_to_dict(a: Announcement) -> dict:
    return {
        "id": a.id,
        "studentId": a.student_id,
        "studentName": a.student_name,
        "message": a.message,
        "created_at": a.created_at.isoformat() if a.created_at else None,
    }


@router.post("/sms/send")
def send_single_sms(payload: SmsIn, admin: Admin = Depends(get_current_admin)):
    phone = (payload.phone or "").strip()
    message = (payload.message or "").strip()
    if not phone or not message:
        raise ValidationError("Phone and message are required")
    send_sms(to_phone=phone, sender=ANNOUNCEMENT_SENDER, message=message)
    return {"success": True}


def _recipients(db: Session, payload: AnnouncementIn) -> list:
    kind = (payload.recipientType or "").strip().lower()
    if kind not in RECIPIENT_TYPES:
        raise ValidationError("recipientType must be individual, all, males or females.")

    if kind == "individual":
        if not payload.studentId:
            raise ValidationError("Please select a student.")
        student = db.get(Student, payload.studentId)
        if not student:
            raise NotFoundError("Selected student not found.")
        return [student]

    q = db.query(Student)
    if kind == "males":
        q = q.filter(Student.gender == GENDER_MALE)
    elif kind == "females":
        q = q.filter(Student.gender == GENDER_FEMALE)
    return q.order_by(Student.id.asc()).all()


@router.post("/announcements")
def send_announcement(
    payload: AnnouncementIn,
    db: Session = Depends(get_db),
    admin: Admin = Depends(get_current_admin),
):
    """
    Saves one announcement per recipient and texts it to them.
    SMS failures are reported per phone and never undo the saved records.
    """
    message = (payload.message or "").strip()
    if not message:
        raise ValidationError("Message cannot be empty.")

    recipients = _recipients(db, payload)
    if not recipients:
        raise ValidationError("No recipients match the selected criteria.")

    saved = []
    failed = []
    for student in recipients:
        full = f"{greeting_for(student)} {student.name}, {message}"
        rec = Announcement(student_id=student.id, student_name=student.name, message=full)
        db.add(rec)
        db.commit()
        db.refresh(rec)
        saved.append(rec)
        try:
            send_sms(to_phone=student.phone, sender=ANNOUNCEMENT_SENDER, message=full)
        except DispatchError:
            failed.append(student.phone)
            logger.warning("Announcement SMS failed", extra={"context": {"student_id": student.id}})

    return {
        "ok": True,
        "announcements": [announcement_to_dict(a) for a in saved],
        "failed": failed,
    }


@router.get("/announcements")
def list_announcements(
    limit: int = 200,
    db: Session = Depends(get_db),
    admin: Admin = Depends(get_current_admin),
):
    rows = (
        db.query(Announcement)
        .order_by(Announcement.created_at.desc(), Announcement.id.desc())
        .limit(limit)
        .all()
    )
    return {"ok": True, "announcements": [announcement_to_dict(a) for a in rows]}
