from __future__ import annotations

import random
from datetime import datetime
from typing import Iterable, List, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from logging_config import get_logger
from models import (
    GENDER_FEMALE,
    GENDER_MALE,
    ROLE_PRIMARY,
    ROLE_SECONDARY,
    Event,
    Partnering,
    PartneringMember,
    Student,
    utcnow,
)
from utils.errors import (
    ConflictError,
    EmptyGroupError,
    InsufficientCapacityError,
    NotFoundError,
    StorageError,
    ValidationError,
)
from utils.pairing import assign_partners, split_roster


logger = get_logger("pairing")


def member_to_dict(m: PartneringMember) -> dict:
    return {
        "id": m.student_id,
        "name": m.name,
        "phone": m.phone,
        "gender": m.gender,
        "hall": m.hall,
        "room": m.room,
        "profilePicUrl": m.profile_pic_url,
    }


def partnering_to_dict(p: Partnering) -> dict:
    primary = p.primary
    return {
        "id": p.id,
        "event_id": p.event_id,
        "male": member_to_dict(primary) if primary else None,
        "females": [member_to_dict(m) for m in p.secondaries],
        "created_at": p.created_at.isoformat() if p.created_at else None,
    }


def _member(student: Student, *, role: str, event_id: int) -> PartneringMember:
    return PartneringMember(
        event_id=event_id,
        role=role,
        student_id=student.id,
        name=student.name,
        phone=student.phone,
        gender=student.gender,
        hall=student.hall,
        room=student.room,
        profile_pic_url=student.profile_pic_url,
    )


def _norm_ids(ids: Optional[Iterable[str]]) -> List[str]:
    out: List[str] = []
    for raw in ids or []:
        sid = str(raw or "").strip()
        if sid and sid not in out:
            out.append(sid)
    return out


def _require_event(db: Session, event_id: Optional[int], message: str) -> Event:
    if not event_id:
        raise ValidationError(message)
    event = db.get(Event, event_id)
    if not event:
        raise NotFoundError("Event not found.")
    return event


def _load_females(db: Session, female_ids: List[str]) -> List[Student]:
    found = {s.id: s for s in db.query(Student).filter(Student.id.in_(female_ids)).all()}
    missing = [
        fid for fid in female_ids
        if fid not in found or (found[fid].gender or "").upper() != GENDER_FEMALE
    ]
    if missing:
        raise NotFoundError(f"Female student(s) not found: {', '.join(missing)}.")
    return [found[fid] for fid in female_ids]


def _taken_conflict(taken_ids: Iterable[str], females: List[Student]) -> ConflictError:
    taken = set(taken_ids)
    names = [f.name for f in females if f.id in taken]
    return ConflictError(f"The following females are already paired: {', '.join(names)}.", names)


def _delete_partnerings(db: Session, event_id: Optional[int] = None) -> int:
    q = db.query(Partnering.id)
    if event_id is not None:
        q = q.filter(Partnering.event_id == event_id)
    ids = [pid for (pid,) in q.all()]
    if not ids:
        return 0
    db.query(PartneringMember).filter(PartneringMember.partnering_id.in_(ids)).delete(synchronize_session="fetch")
    db.query(Partnering).filter(Partnering.id.in_(ids)).delete(synchronize_session="fetch")
    return len(ids)


def list_partnerings(db: Session, *, event_id: Optional[int] = None) -> List[Partnering]:
    q = db.query(Partnering)
    if event_id is not None:
        q = q.filter(Partnering.event_id == event_id)
    return q.order_by(Partnering.event_id.asc(), Partnering.id.asc()).all()


def generate_pairings(
    db: Session,
    *,
    event_id: Optional[int],
    rng: Optional[random.Random] = None,
    now: Optional[datetime] = None,
) -> List[Partnering]:
    """
    Replaces every pairing of `event_id` with a fresh random draw.

    All precondition checks run before anything is deleted. Each call
    re-rolls, so two runs over the same roster normally differ.
    """
    _require_event(db, event_id, "Please select an event first.")

    males, females = split_roster(db.query(Student).order_by(Student.id.asc()).all())
    if not males:
        raise EmptyGroupError("No male students found.")
    if not females:
        raise EmptyGroupError("No female students found.")
    if len(females) < len(males):
        raise InsufficientCapacityError("Not enough females to pair with all males.")

    now = now or utcnow()
    created: List[Partnering] = []
    try:
        removed = _delete_partnerings(db, event_id)
        for male, assigned in assign_partners(males, females, rng):
            p = Partnering(event_id=event_id, created_at=now)
            p.members.append(_member(male, role=ROLE_PRIMARY, event_id=event_id))
            for female in assigned:
                p.members.append(_member(female, role=ROLE_SECONDARY, event_id=event_id))
            db.add(p)
            created.append(p)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Failed to generate partners", extra={"context": {"event_id": event_id}})
        raise StorageError("Failed to generate partners.") from exc

    logger.info(
        "Partners generated",
        extra={"context": {
            "event_id": event_id,
            "replaced": removed,
            "males": len(males),
            "females": len(females),
        }},
    )
    return created


def create_pairing(
    db: Session,
    *,
    event_id: Optional[int],
    male_id: Optional[str],
    female_ids: Optional[Iterable[str]],
    now: Optional[datetime] = None,
) -> Partnering:
    if not event_id:
        raise ValidationError("Please select an event.")
    male_id = (male_id or "").strip()
    if not male_id:
        raise ValidationError("Please select a male student.")
    ids = _norm_ids(female_ids)
    if not ids:
        raise ValidationError("Please select at least one female.")

    _require_event(db, event_id, "Please select an event.")
    male = db.get(Student, male_id)
    if not male or (male.gender or "").upper() != GENDER_MALE:
        raise NotFoundError("Male student not found.")
    females = _load_females(db, ids)

    already = (
        db.query(PartneringMember.id)
        .filter(
            PartneringMember.event_id == event_id,
            PartneringMember.role == ROLE_PRIMARY,
            PartneringMember.student_id == male.id,
        )
        .first()
    )
    if already:
        raise ConflictError("This male is already paired for the selected event.", [male.name])

    taken = (
        db.query(PartneringMember.student_id)
        .filter(
            PartneringMember.event_id == event_id,
            PartneringMember.role == ROLE_SECONDARY,
            PartneringMember.student_id.in_(ids),
        )
        .all()
    )
    if taken:
        raise _taken_conflict((sid for (sid,) in taken), females)

    p = Partnering(event_id=event_id, created_at=now or utcnow())
    p.members.append(_member(male, role=ROLE_PRIMARY, event_id=event_id))
    for female in females:
        p.members.append(_member(female, role=ROLE_SECONDARY, event_id=event_id))
    db.add(p)
    try:
        db.commit()
    except IntegrityError as exc:
        # Unique (event, role, student) lost to a concurrent write.
        db.rollback()
        raise ConflictError("One of the selected students was just paired by another request.") from exc
    db.refresh(p)
    logger.info("Pairing created", extra={"context": {"event_id": event_id, "partnering_id": p.id}})
    return p


def edit_pairing(db: Session, *, partnering_id: int, female_ids: Optional[Iterable[str]]) -> Partnering:
    """Replaces the female side of one pairing; everything else is left as-is."""
    p = db.get(Partnering, partnering_id)
    if not p:
        raise NotFoundError("Partner not found.")

    ids = _norm_ids(female_ids)
    if not ids:
        raise ValidationError("At least one female must be selected.")
    females = _load_females(db, ids)

    taken = (
        db.query(PartneringMember.student_id)
        .filter(
            PartneringMember.event_id == p.event_id,
            PartneringMember.role == ROLE_SECONDARY,
            PartneringMember.partnering_id != p.id,
            PartneringMember.student_id.in_(ids),
        )
        .all()
    )
    if taken:
        raise _taken_conflict((sid for (sid,) in taken), females)

    event_id = p.event_id
    try:
        db.query(PartneringMember).filter(
            PartneringMember.partnering_id == p.id,
            PartneringMember.role == ROLE_SECONDARY,
        ).delete(synchronize_session="fetch")
        db.expire(p, ["members"])
        for female in females:
            p.members.append(_member(female, role=ROLE_SECONDARY, event_id=event_id))
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise ConflictError("One of the selected females was just paired by another request.") from exc
    db.refresh(p)
    logger.info("Pairing updated", extra={"context": {"partnering_id": p.id, "females": len(females)}})
    return p


def clear_all_pairings(db: Session, *, confirm: bool) -> int:
    """Deletes every pairing of every event (not only the selected one)."""
    if not confirm:
        raise ValidationError(
            "This will clear ALL partners. This action cannot be undone!",
            title="Are you sure?",
        )
    try:
        removed = _delete_partnerings(db)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Failed to clear partners")
        raise StorageError("Failed to clear partners.") from exc
    logger.info("All partners cleared", extra={"context": {"removed": removed}})
    return removed


def dates_for_student(db: Session, student: Student) -> List[dict]:
    """Partners assigned to `student`, with details read from the live roster."""
    gender = (student.gender or "").upper()
    role = ROLE_PRIMARY if gender == GENDER_MALE else ROLE_SECONDARY
    memberships = (
        db.query(PartneringMember)
        .filter(PartneringMember.student_id == student.id, PartneringMember.role == role)
        .order_by(PartneringMember.event_id.asc())
        .all()
    )

    out: List[dict] = []
    for m in memberships:
        p = m.partnering
        others = p.secondaries if role == ROLE_PRIMARY else [p.primary] if p.primary else []
        partners = []
        for other in others:
            live = db.get(Student, other.student_id)
            if not live or live.id == student.id:
                continue
            partners.append({
                "id": live.id,
                "name": live.name,
                "hall": live.hall,
                "room": live.room,
                "idNumber": live.id,
                "phone": live.phone,
                "profilePicUrl": live.profile_pic_url,
            })
        event = db.get(Event, p.event_id)
        out.append({
            "event_id": p.event_id,
            "event_title": event.title if event else None,
            "partners": partners,
        })
    return out
