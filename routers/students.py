from __future__ import annotations

import csv
import io
from typing import Optional

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from fastapi.responses import Response
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from database import get_db
from logging_config import get_logger
from models import GENDER_FEMALE, GENDER_MALE, Admin, Identity, OtpRecord, Student
from routers.auth import get_current_admin, get_current_student, normalize_input, student_to_dict
from utils.errors import ConflictError, NotFoundError, ValidationError


router = APIRouter(prefix="/students", tags=["students"])
logger = get_logger("roster")

CSV_HEADERS = ["idNumber", "name", "phone", "gender", "hall", "room"]


def _norm_gender(value: str) -> str:
    gender = (value or "").strip().upper()
    if gender not in {GENDER_MALE, GENDER_FEMALE}:
        raise ValidationError("Gender must be MALE or FEMALE.")
    return gender


class StudentIn(BaseModel):
    idNumber: str
    name: str
    phone: str
    gender: str
    hall: str
    room: str
    profilePicUrl: Optional[str] = None


class StudentUpdateIn(BaseModel):
    name: Optional[str] = None
    phone: Optional[str] = None
    gender: Optional[str] = None
    hall: Optional[str] = None
    room: Optional[str] = None
    profilePicUrl: Optional[str] = None


class ProfileIn(BaseModel):
    name: Optional[str] = None
    profilePicUrl: Optional[str] = None


def _create_student(db: Session, data: StudentIn) -> Student:
    fields = [data.idNumber, data.name, data.phone, data.gender, data.hall, data.room]
    if not all((f or "").strip() for f in fields):
        raise ValidationError("All fields are required.")

    student_id = normalize_input(data.idNumber)
    if db.get(Student, student_id):
        raise ConflictError("Student with this ID Number already exists!", [student_id])

    student = Student(
        id=student_id,
        name=data.name.strip(),
        phone=normalize_input(data.phone),
        gender=_norm_gender(data.gender),
        hall=data.hall.strip(),
        room=data.room.strip(),
        profile_pic_url=(data.profilePicUrl or "").strip() or None,
    )
    db.add(student)
    if not db.get(Identity, student_id):
        db.add(Identity(uid=student_id))
    db.commit()
    db.refresh(student)
    return student


def _delete_student(db: Session, student: Student) -> None:
    sid = student.id
    db.delete(student)
    db.commit()

    # Revoking the login credential is best-effort, as is dropping any pending OTP.
    try:
        db.query(Identity).filter(Identity.uid == sid).delete(synchronize_session=False)
        db.query(OtpRecord).filter(OtpRecord.subject_id == sid).delete(synchronize_session=False)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Failed to revoke identity", extra={"context": {"student_id": sid}})


@router.get("")
def list_students(
    gender: Optional[str] = None,
    db: Session = Depends(get_db),
    admin: Admin = Depends(get_current_admin),
):
    q = db.query(Student)
    if gender:
        q = q.filter(Student.gender == _norm_gender(gender))
    return {"ok": True, "students": [student_to_dict(s) for s in q.order_by(Student.id.asc()).all()]}


@router.get("/export")
def export_students(
    db: Session = Depends(get_db),
    admin: Admin = Depends(get_current_admin),
):
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    writer.writerow(CSV_HEADERS)
    for s in db.query(Student).order_by(Student.id.asc()).all():
        writer.writerow([s.id, s.name, s.phone, s.gender, s.hall, s.room])
    return Response(
        content=buf.getvalue(),
        media_type="text/csv",
        headers={"Content-Disposition": 'attachment; filename="students.csv"'},
    )


@router.post("/import")
async def import_students(
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
    admin: Admin = Depends(get_current_admin),
):
    """
    Bulk insert from CSV (idNumber,name,phone,gender,hall,room; header row skipped).
    Rows that fail are listed by id instead of aborting the upload.
    """
    data = await file.read()
    if not data:
        raise ValidationError("Empty file.")
    try:
        text = data.decode("utf-8-sig")
    except UnicodeDecodeError:
        raise ValidationError("CSV must be UTF-8 encoded.")

    rows = list(csv.reader(io.StringIO(text)))[1:]
    created = 0
    failed = []
    for row in rows:
        cells = [c.strip() for c in row]
        if not any(cells):
            continue
        cells += [""] * (len(CSV_HEADERS) - len(cells))
        id_number, name, phone, gender, hall, room = cells[:6]
        try:
            _create_student(db, StudentIn(
                idNumber=id_number, name=name, phone=phone, gender=gender, hall=hall, room=room,
            ))
            created += 1
        except (ValidationError, ConflictError, SQLAlchemyError) as exc:
            db.rollback()
            failed.append(normalize_input(id_number) or "(blank)")
            logger.warning(
                "Student import row failed: %s", exc, extra={"context": {"student_id": id_number}}
            )

    logger.info("Student import finished", extra={"context": {"created": created, "failed": len(failed)}})
    return {"ok": not failed, "created": created, "failed": failed}


@router.put("/me")
def update_my_profile(
    payload: ProfileIn,
    db: Session = Depends(get_db),
    student: Student = Depends(get_current_student),
):
    if payload.name is not None:
        new_name = payload.name.strip()
        if not new_name:
            raise ValidationError("Name cannot be empty.")
        student.name = new_name
    if payload.profilePicUrl is not None:
        student.profile_pic_url = payload.profilePicUrl.strip() or None
    db.add(student)
    db.commit()
    db.refresh(student)
    return {"ok": True, "user": student_to_dict(student)}


@router.get("/{student_id}")
def get_student(
    student_id: str,
    db: Session = Depends(get_db),
    admin: Admin = Depends(get_current_admin),
):
    student = db.get(Student, student_id)
    if not student:
        raise NotFoundError("Student not found.")
    return {"ok": True, "student": student_to_dict(student)}


@router.post("", status_code=201)
def create_student(
    payload: StudentIn,
    db: Session = Depends(get_db),
    admin: Admin = Depends(get_current_admin),
):
    student = _create_student(db, payload)
    logger.info("Student added", extra={"context": {"student_id": student.id}})
    return {"ok": True, "student": student_to_dict(student)}


@router.put("/{student_id}")
def update_student(
    student_id: str,
    payload: StudentUpdateIn,
    db: Session = Depends(get_db),
    admin: Admin = Depends(get_current_admin),
):
    student = db.get(Student, student_id)
    if not student:
        raise NotFoundError("Student not found.")

    for attr, value in (("name", payload.name), ("hall", payload.hall), ("room", payload.room)):
        if value is not None:
            if not value.strip():
                raise ValidationError("All fields are required.")
            setattr(student, attr, value.strip())
    if payload.phone is not None:
        if not payload.phone.strip():
            raise ValidationError("All fields are required.")
        student.phone = normalize_input(payload.phone)
    if payload.gender is not None:
        student.gender = _norm_gender(payload.gender)
    if payload.profilePicUrl is not None:
        student.profile_pic_url = payload.profilePicUrl.strip() or None

    db.add(student)
    db.commit()
    db.refresh(student)
    return {"ok": True, "student": student_to_dict(student)}


@router.delete("/{student_id}")
def delete_student(
    student_id: str,
    db: Session = Depends(get_db),
    admin: Admin = Depends(get_current_admin),
):
    student = db.get(Student, student_id)
    if not student:
        raise NotFoundError("Student not found.")
    _delete_student(db, student)
    logger.info("Student deleted", extra={"context": {"student_id": student_id}})
    return {"ok": True}


@router.delete("")
def clear_students(
    confirm: bool = False,
    db: Session = Depends(get_db),
    admin: Admin = Depends(get_current_admin),
):
    if not confirm:
        raise HTTPException(400, "Confirmation required to clear all students.")

    failed = []
    for student_id in [sid for (sid,) in db.query(Student.id).all()]:
        student = db.get(Student, student_id)
        if not student:
            continue
        try:
            _delete_student(db, student)
        except SQLAlchemyError:
            db.rollback()
            failed.append(student_id)
            logger.exception("Failed to delete student", extra={"context": {"student_id": student_id}})

    if failed:
        return {"ok": False, "failed": failed, "message": f"Some students could not be deleted: {', '.join(failed)}"}
    return {"ok": True, "failed": [], "message": "All students have been cleared."}
