from __future__ import annotations

import os
import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional

import bcrypt
from fastapi import APIRouter, Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from pydantic import BaseModel, EmailStr
from sqlalchemy.orm import Session

from database import get_db
from logging_config import get_logger
from models import Admin, Identity, Student
from utils.errors import NotFoundError, ValidationError
from utils.otp_service import otp_issue, otp_verify


router = APIRouter(prefix="/auth", tags=["auth"])
bearer = HTTPBearer(auto_error=False)
logger = get_logger("http")

JWT_SECRET = os.getenv("JWT_SECRET", "change_me")
JWT_ALG = os.getenv("JWT_ALG", "HS256")
JWT_EXP_MIN = int(os.getenv("JWT_EXP_MIN", "1440"))  # 1 day default

ROLE_ADMIN = "admin"
ROLE_STUDENT = "student"
ROLE_ANONYMOUS = "anonymous"


def normalize_input(value: str) -> str:
    # Index numbers and phone numbers are stored with a leading zero.
    value = (value or "").strip()
    return value if not value or value.startswith("0") else f"0{value}"


def create_token(*, subject: str, role: str) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "sub": subject,
        "role": role,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(minutes=JWT_EXP_MIN)).timestamp()),
    }
    return jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALG)


def _safe_password(raw: str) -> bytes:
    # bcrypt only looks at the first 72 bytes; truncate multi-byte safely.
    return raw.strip().encode("utf-8")[:72].decode("utf-8", errors="ignore").encode("utf-8")


def hash_password(raw: str) -> str:
    return bcrypt.hashpw(_safe_password(raw), bcrypt.gensalt()).decode("utf-8")


def check_password(raw: str, password_hash: str) -> bool:
    return bcrypt.checkpw(_safe_password(raw), password_hash.encode("utf-8"))


def _decode(creds: Optional[HTTPAuthorizationCredentials]) -> dict:
    if not creds or not creds.credentials:
        raise HTTPException(401, "Missing Authorization token")
    try:
        payload = jwt.decode(creds.credentials, JWT_SECRET, algorithms=[JWT_ALG])
    except JWTError:
        raise HTTPException(401, "Invalid token")
    if not payload.get("sub") or not payload.get("role"):
        raise HTTPException(401, "Invalid token")
    return payload


def get_current_admin(
    creds: Optional[HTTPAuthorizationCredentials] = Depends(bearer),
    db: Session = Depends(get_db),
) -> Admin:
    payload = _decode(creds)
    if payload["role"] != ROLE_ADMIN:
        raise HTTPException(403, "Admin access required")
    try:
        admin = db.get(Admin, int(payload["sub"]))
    except ValueError:
        raise HTTPException(401, "Invalid token")
    if not admin:
        raise HTTPException(401, "Admin not found")
    return admin


def get_current_student(
    creds: Optional[HTTPAuthorizationCredentials] = Depends(bearer),
    db: Session = Depends(get_db),
) -> Student:
    payload = _decode(creds)
    if payload["role"] != ROLE_STUDENT:
        raise HTTPException(403, "Student access required")
    uid = str(payload["sub"])
    # A deleted student's credential is revoked with the identity row.
    if not db.get(Identity, uid):
        raise HTTPException(401, "Session revoked")
    student = db.get(Student, uid)
    if not student:
        raise HTTPException(401, "Student not found")
    return student


def student_to_dict(s: Student) -> dict:
    return {
        "id": s.id,
        "idNumber": s.id,
        "name": s.name,
        "phone": s.phone,
        "gender": s.gender,
        "hall": s.hall,
        "room": s.room,
        "profilePicUrl": s.profile_pic_url,
    }


@router.post("/anonymous")
def anonymous_session(db: Session = Depends(get_db)):
    """Creates a throwaway identity so the login screens can talk to the API."""
    uid = f"anon:{secrets.token_hex(8)}"
    db.add(Identity(uid=uid))
    db.commit()
    return {"ok": True, "uid": uid, "access_token": create_token(subject=uid, role=ROLE_ANONYMOUS), "token_type": "bearer"}


class AdminLoginIn(BaseModel):
    email: EmailStr
    password: str


@router.post("/admin/login")
def admin_login(payload: AdminLoginIn, db: Session = Depends(get_db)):
    email = str(payload.email).strip().lower()
    admin = db.query(Admin).filter(Admin.email == email).first()
    if not admin or not check_password(payload.password, admin.password_hash):
        raise HTTPException(401, "Invalid email or password.")
    logger.info("Admin signed in", extra={"context": {"admin_id": admin.id}})
    return {
        "ok": True,
        "access_token": create_token(subject=str(admin.id), role=ROLE_ADMIN),
        "token_type": "bearer",
    }


class SendOtpIn(BaseModel):
    phone: Optional[str] = None
    studentDocId: Optional[str] = None


@router.post("/otp/send")
def send_otp(payload: SendOtpIn, db: Session = Depends(get_db)):
    subject_id = (payload.studentDocId or "").strip()
    phone = (payload.phone or "").strip()
    if not subject_id or not phone:
        raise ValidationError("Phone and studentDocId are required")

    student = db.get(Student, normalize_input(subject_id))
    if not student:
        raise NotFoundError("Student not found.")
    # The code only ever goes to the number on the roster.
    if normalize_input(phone) != normalize_input(student.phone):
        logger.warning("OTP phone mismatch", extra={"context": {"subject_id": student.id}})
        raise ValidationError("Phone number does not match our records.")
    otp_issue(db, subject_id=student.id, phone=student.phone)
    return {"success": True}


class StudentLoginIn(BaseModel):
    idNumber: str


@router.post("/student/login")
def student_login(payload: StudentLoginIn, db: Session = Depends(get_db)):
    ident = (payload.idNumber or "").strip()
    if not ident:
        raise ValidationError("ID Number is required.")
    student = db.get(Student, ident)
    if not student:
        raise NotFoundError("Student not found. Check your ID Number.")
    otp_issue(db, subject_id=student.id, phone=student.phone)
    return {"success": True, "phone": student.phone}


class VerifyOtpIn(BaseModel):
    studentDocId: str
    otp: str


@router.post("/otp/verify")
def verify_otp(payload: VerifyOtpIn, db: Session = Depends(get_db)):
    subject_id = payload.studentDocId.strip()
    otp_verify(db, subject_id=subject_id, otp=payload.otp)

    student = db.get(Student, subject_id)
    if not student:
        raise NotFoundError("Student not found.")
    if not db.get(Identity, subject_id):
        db.add(Identity(uid=subject_id))
        db.commit()
    return {
        "ok": True,
        "access_token": create_token(subject=subject_id, role=ROLE_STUDENT),
        "token_type": "bearer",
        "user": student_to_dict(student),
    }


@router.get("/me")
def me(student: Student = Depends(get_current_student)):
    return {"ok": True, "user": student_to_dict(student)}
