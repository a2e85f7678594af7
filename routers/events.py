from __future__ import annotations

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy import or_
from sqlalchemy.orm import Session

from database import get_db
from models import Admin, Event, Partnering, PartneringMember, Student
from routers.auth import get_current_admin
from utils.errors import NotFoundError, ValidationError


router = APIRouter(prefix="/events", tags=["events"])

STATUS_UPCOMING = "Upcoming"
STATUS_ONGOING = "Ongoing"
STATUS_COMPLETED = "Completed"


def _parse(date: str, time_of_day: str) -> datetime:
    try:
        return datetime.strptime(f"{date.strip()} {time_of_day.strip()}", "%Y-%m-%d %H:%M")
    except ValueError:
        raise ValidationError("Date must be YYYY-MM-DD and times HH:MM.")


def event_status(date: str, start_time: str, end_time: str, now: Optional[datetime] = None) -> str:
    """Status against the local wall clock; only evaluated when the event is written."""
    start = _parse(date, start_time)
    end = _parse(date, end_time)
    now = now or datetime.now()
    if now < start:
        return STATUS_UPCOMING
    if now <= end:
        return STATUS_ONGOING
    return STATUS_COMPLETED


def event_to_dict(e: Event) -> dict:
    return {
        "id": e.id,
        "title": e.title,
        "description": e.description,
        "date": e.date,
        "startTime": e.start_time,
        "endTime": e.end_time,
        "status": e.status,
        "students": e.students,
    }


class EventIn(BaseModel):
    title: str
    description: str = ""
    date: str
    startTime: str
    endTime: str


def _apply(db: Session, event: Event, payload: EventIn) -> None:
    if not payload.title.strip():
        raise ValidationError("Title is required.")
    event.title = payload.title.strip()
    event.description = payload.description.strip()
    event.date = payload.date.strip()
    event.start_time = payload.startTime.strip()
    event.end_time = payload.endTime.strip()
    event.status = event_status(event.date, event.start_time, event.end_time)
    event.students = db.query(Student).count()


@router.get("")
def list_events(
    q: Optional[str] = None,
    db: Session = Depends(get_db),
    admin: Admin = Depends(get_current_admin),
):
    query = db.query(Event)
    term = (q or "").strip()
    if term:
        like = f"%{term}%"
        query = query.filter(or_(Event.title.ilike(like), Event.description.ilike(like)))
    return {"ok": True, "events": [event_to_dict(e) for e in query.order_by(Event.date.asc(), Event.id.asc()).all()]}


@router.post("", status_code=201)
def create_event(
    payload: EventIn,
    db: Session = Depends(get_db),
    admin: Admin = Depends(get_current_admin),
):
    event = Event()
    _apply(db, event, payload)
    db.add(event)
    db.commit()
    db.refresh(event)
    return {"ok": True, "event": event_to_dict(event)}


@router.put("/{event_id}")
def update_event(
    event_id: int,
    payload: EventIn,
    db: Session = Depends(get_db),
    admin: Admin = Depends(get_current_admin),
):
    event = db.get(Event, event_id)
    if not event:
        raise NotFoundError("Event not found.")
    _apply(db, event, payload)
    db.add(event)
    db.commit()
    db.refresh(event)
    return {"ok": True, "event": event_to_dict(event)}


@router.delete("/{event_id}")
def delete_event(
    event_id: int,
    db: Session = Depends(get_db),
    admin: Admin = Depends(get_current_admin),
):
    event = db.get(Event, event_id)
    if not event:
        raise NotFoundError("Event not found.")
    db.query(PartneringMember).filter(PartneringMember.event_id == event_id).delete(synchronize_session=False)
    db.query(Partnering).filter(Partnering.event_id == event_id).delete(synchronize_session=False)
    db.delete(event)
    db.commit()
    return {"ok": True}
