from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from database import get_db
from models import GENDER_FEMALE, GENDER_MALE, Admin, Event, Partnering, Student
from routers.auth import get_current_admin
from routers.events import STATUS_UPCOMING

router = APIRouter(tags=["dashboard"])


@router.get("/dashboard/stats")
def dashboard_stats(
    db: Session = Depends(get_db),
    admin: Admin = Depends(get_current_admin),
):
    """
    Counters for the admin landing page.
    """
    return {
        "ok": True,
        "students": db.query(Student).count(),
        "males": db.query(Student).filter(Student.gender == GENDER_MALE).count(),
        "females": db.query(Student).filter(Student.gender == GENDER_FEMALE).count(),
        "students_with_photo": db.query(Student).filter(Student.profile_pic_url.isnot(None)).count(),
        "events": db.query(Event).count(),
        "upcoming_events": db.query(Event).filter(Event.status == STATUS_UPCOMING).count(),
        "partnerings": db.query(Partnering).count(),
    }
