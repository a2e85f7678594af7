import os
import sys

import yaml
from sqlalchemy.orm import Session

# Add repository root to path so we can import models/db
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from database import SessionLocal, engine, Base
from models import Admin, Identity, Student
from routers.auth import hash_password, normalize_input


def load_data(path=None):
    Base.metadata.create_all(bind=engine)
    db: Session = SessionLocal()

    path = path or os.path.join(os.path.dirname(__file__), "dummy_students.yml")
    with open(path, "r") as f:
        data = yaml.safe_load(f) or {}

    for a_data in data.get("admins", []):
        email = a_data["email"].strip().lower()
        if db.query(Admin).filter(Admin.email == email).first():
            print(f"Admin {email} already exists. Skipping.")
            continue
        db.add(Admin(email=email, password_hash=hash_password(a_data["password"])))
        print(f"Adding admin {email}...")

    for s_data in data.get("students", []):
        student_id = normalize_input(str(s_data["idNumber"]))
        if db.get(Student, student_id):
            print(f"Student {student_id} already exists. Skipping.")
            continue

        db.add(Student(
            id=student_id,
            name=s_data["name"],
            phone=normalize_input(str(s_data["phone"])),
            gender=str(s_data["gender"]).upper(),
            hall=s_data["hall"],
            room=str(s_data["room"]),
            profile_pic_url=s_data.get("profilePicUrl"),
        ))
        if not db.get(Identity, student_id):
            db.add(Identity(uid=student_id))
        print(f"Adding student {student_id}...")

    db.commit()
    db.close()
    print("Dummy data loaded.")


if __name__ == "__main__":
    load_data(sys.argv[1] if len(sys.argv) > 1 else None)
