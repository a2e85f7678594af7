from __future__ import annotations

import math
import os
import random
from datetime import datetime
from typing import Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from database import SessionLocal
from logging_config import get_logger
from models import OtpRecord, utcnow
from utils.errors import (
    DispatchError,
    ExpiredError,
    InvalidCodeError,
    NotFoundError,
    RateLimitError,
    StorageError,
    ValidationError,
)
from utils.sms import send_sms


logger = get_logger("otp")

OTP_EXPIRY_SECONDS = int(os.getenv("OTP_EXPIRY_SECONDS", "300"))
OTP_RATE_LIMIT_SECONDS = int(os.getenv("OTP_RATE_LIMIT_SECONDS", "60"))
OTP_SENDER = os.getenv("SMS_OTP_SENDER", "BlindDate")


def _env_flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


# Off by default: a verified code stays usable until it expires.
OTP_SINGLE_USE = _env_flag("OTP_SINGLE_USE")


def generate_code() -> str:
    return f"{random.randint(100000, 999999)}"


def _elapsed_seconds(issued_at: datetime, now: datetime) -> float:
    return (now - issued_at).total_seconds()


def _lost_race(db: Session, subject_id: str, now: datetime) -> RateLimitError:
    # Another request wrote first; report the wait against the winner's timestamp.
    rec = db.get(OtpRecord, subject_id)
    if rec is not None and rec.issued_at is not None:
        elapsed = _elapsed_seconds(rec.issued_at, now)
        return RateLimitError(max(1, OTP_RATE_LIMIT_SECONDS - math.floor(max(elapsed, 0))))
    return RateLimitError(OTP_RATE_LIMIT_SECONDS)


def otp_issue(db: Session, *, subject_id: str, phone: str, now: Optional[datetime] = None) -> str:
    """
    Issues an OTP for `subject_id` and sends it by SMS to `phone`.

    The record is written (compare-and-swap on the previous `issued_at`)
    before the SMS goes out. A failed send leaves the record live.
    """
    subject_id = (subject_id or "").strip()
    phone = (phone or "").strip()
    if not subject_id or not phone:
        raise ValidationError("Phone and studentDocId are required")

    now = now or utcnow()
    logger.info("OTP requested", extra={"context": {"subject_id": subject_id}})

    rec = db.get(OtpRecord, subject_id)
    previous = rec.issued_at if rec is not None else None
    if previous is not None:
        elapsed = _elapsed_seconds(previous, now)
        if elapsed < OTP_RATE_LIMIT_SECONDS:
            raise RateLimitError(OTP_RATE_LIMIT_SECONDS - math.floor(elapsed))

    code = generate_code()
    try:
        if rec is not None:
            q = db.query(OtpRecord).filter(OtpRecord.subject_id == subject_id)
            if previous is None:
                q = q.filter(OtpRecord.issued_at.is_(None))
            else:
                q = q.filter(OtpRecord.issued_at == previous)
            updated = q.update({OtpRecord.code: code, OtpRecord.issued_at: now}, synchronize_session=False)
            if updated != 1:
                db.rollback()
                if db.get(OtpRecord, subject_id) is not None:
                    raise _lost_race(db, subject_id, now)
                # Swept since we read it; issue a fresh record instead.
                rec = None
        if rec is None:
            db.add(OtpRecord(subject_id=subject_id, code=code, issued_at=now))
        db.commit()
    except IntegrityError:
        db.rollback()
        raise _lost_race(db, subject_id, now)
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Failed to save OTP", extra={"context": {"subject_id": subject_id}})
        raise StorageError("Failed to save OTP") from exc

    logger.info("OTP saved", extra={"context": {"subject_id": subject_id}})

    minutes = OTP_EXPIRY_SECONDS // 60
    try:
        send_sms(
            to_phone=phone,
            sender=OTP_SENDER,
            message=f"Your OTP code is {code}. It expires in {minutes} minutes.",
        )
    except DispatchError as exc:
        logger.error("OTP SMS failed; record left live", extra={"context": {"subject_id": subject_id}})
        raise DispatchError("Failed to send OTP via SMS") from exc
    return code


def otp_verify(
    db: Session,
    *,
    subject_id: str,
    otp: str,
    now: Optional[datetime] = None,
    single_use: Optional[bool] = None,
) -> None:
    """Raises NotFoundError / ExpiredError / InvalidCodeError; returns on success."""
    subject_id = (subject_id or "").strip()
    if not subject_id or otp is None or otp == "":
        raise ValidationError("studentDocId and otp are required")

    now = now or utcnow()
    rec = db.get(OtpRecord, subject_id)
    if rec is None:
        raise NotFoundError("No OTP found. Please request a new OTP.", title="OTP Not Found")

    if rec.issued_at is None or _elapsed_seconds(rec.issued_at, now) > OTP_EXPIRY_SECONDS:
        raise ExpiredError("OTP has expired. Please request a new OTP.")

    if rec.code != otp:
        raise InvalidCodeError("The OTP you entered is incorrect.")

    if single_use is None:
        single_use = OTP_SINGLE_USE
    if single_use:
        issued_at = rec.issued_at
        db.query(OtpRecord).filter(
            OtpRecord.subject_id == subject_id, OtpRecord.issued_at == issued_at
        ).delete(synchronize_session=False)
        db.commit()

    logger.info("OTP verified", extra={"context": {"subject_id": subject_id, "single_use": single_use}})


def sweep_expired(db: Session, *, now: Optional[datetime] = None) -> int:
    """
    Deletes every OTP older than the expiry window.

    Each delete is conditional on the `issued_at` that was read, so a code
    re-issued between the read and the delete survives. One failing delete
    does not stop the others.
    """
    now = now or utcnow()
    try:
        rows = db.query(OtpRecord.subject_id, OtpRecord.issued_at).all()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("OTP cleanup failed")
        return 0

    expired = [
        (subject_id, issued_at)
        for subject_id, issued_at in rows
        if issued_at is not None and _elapsed_seconds(issued_at, now) > OTP_EXPIRY_SECONDS
    ]

    deleted = 0
    for subject_id, issued_at in expired:
        try:
            n = (
                db.query(OtpRecord)
                .filter(OtpRecord.subject_id == subject_id, OtpRecord.issued_at == issued_at)
                .delete(synchronize_session=False)
            )
            db.commit()
        except SQLAlchemyError:
            db.rollback()
            logger.exception("Failed to delete expired OTP", extra={"context": {"subject_id": subject_id}})
            continue
        if n:
            deleted += 1
            logger.info("Deleted expired OTP", extra={"context": {"subject_id": subject_id}})
    return deleted


def run_sweep() -> int:
    """Scheduler entry point: one sweep on a fresh session."""
    db = SessionLocal()
    try:
        return sweep_expired(db)
    finally:
        db.close()
