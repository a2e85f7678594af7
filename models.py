from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import relationship

from database import Base


def utcnow() -> datetime:
    # Naive UTC: SQLite drops tzinfo, so every stored timestamp is naive UTC.
    return datetime.now(timezone.utc).replace(tzinfo=None)


GENDER_MALE = "MALE"
GENDER_FEMALE = "FEMALE"

ROLE_PRIMARY = "primary"
ROLE_SECONDARY = "secondary"


class Student(Base):
    __tablename__ = "students"

    # The human-provided index number doubles as the document key.
    id = Column(String, primary_key=True)

    name = Column(String, nullable=False)
    phone = Column(String, nullable=False)
    gender = Column(String, nullable=False)  # "MALE" | "FEMALE"
    hall = Column(String, nullable=False)
    room = Column(String, nullable=False)
    profile_pic_url = Column(String, nullable=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)


class Identity(Base):
    """Login credential backing a student (or anonymous) bearer token."""

    __tablename__ = "identities"

    uid = Column(String, primary_key=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)


class Admin(Base):
    __tablename__ = "admins"

    id = Column(Integer, primary_key=True)
    email = Column(String, unique=True, index=True, nullable=False)

    # bcrypt hash. Never store plaintext.
    password_hash = Column(String, nullable=False)

    created_at = Column(DateTime, default=utcnow, nullable=False)


class OtpRecord(Base):
    __tablename__ = "otp_records"

    # One live OTP per student; a new issuance overwrites the row.
    subject_id = Column(String, primary_key=True)

    # Kept as a string so leading zeros would survive.
    code = Column(String, nullable=False)
    issued_at = Column(DateTime, nullable=True)


class Event(Base):
    __tablename__ = "events"

    id = Column(Integer, primary_key=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=False, default="")
    date = Column(String, nullable=False)  # YYYY-MM-DD
    start_time = Column(String, nullable=False)  # HH:MM
    end_time = Column(String, nullable=False)  # HH:MM

    # Computed at write time only; never refreshed in the background.
    status = Column(String, nullable=False)  # "Upcoming" | "Ongoing" | "Completed"
    students = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime, default=utcnow, nullable=False)


class Partnering(Base):
    __tablename__ = "partnerings"

    id = Column(Integer, primary_key=True)
    event_id = Column(Integer, ForeignKey("events.id", ondelete="CASCADE"), nullable=False, index=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    members = relationship(
        "PartneringMember",
        back_populates="partnering",
        cascade="all, delete-orphan",
        order_by="PartneringMember.id",
    )

    @property
    def primary(self) -> "PartneringMember | None":
        for m in self.members:
            if m.role == ROLE_PRIMARY:
                return m
        return None

    @property
    def secondaries(self) -> list["PartneringMember"]:
        return [m for m in self.members if m.role == ROLE_SECONDARY]


class PartneringMember(Base):
    """Denormalized copy of a student taken when the pairing was written."""

    __tablename__ = "partnering_members"
    __table_args__ = (
        # A student sits on each side of at most one pairing per event.
        UniqueConstraint("event_id", "role", "student_id", name="partnering_members_event_role_student_unique"),
    )

    id = Column(Integer, primary_key=True)
    partnering_id = Column(Integer, ForeignKey("partnerings.id", ondelete="CASCADE"), nullable=False, index=True)
    event_id = Column(Integer, nullable=False, index=True)
    role = Column(String, nullable=False)  # "primary" | "secondary"

    student_id = Column(String, nullable=False)
    name = Column(String, nullable=False)
    phone = Column(String, nullable=False)
    gender = Column(String, nullable=False)
    hall = Column(String, nullable=False)
    room = Column(String, nullable=False)
    profile_pic_url = Column(String, nullable=True)

    partnering = relationship("Partnering", back_populates="members")


class Announcement(Base):
    __tablename__ = "announcements"

    id = Column(Integer, primary_key=True)
    student_id = Column(String, nullable=False, index=True)
    student_name = Column(String, nullable=False)
    message = Column(Text, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False, index=True)
