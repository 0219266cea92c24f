from sqlmodel import Session, select
from .database import engine, init_db
from .models import User, CaregiverLink, Medication
from .auth import hash_password

USERS = [
    {"email": "elderly1@example.com", "full_name": "Elder One", "role": "elderly_user", "password": "pass"},
    {"email": "caregiver1@example.com", "full_name": "Care One", "role": "caregiver", "password": "pass"},
]

MEDICATIONS = [
    {"name": "Metformin", "dosage": "500mg", "time": "08:00", "total_stock": 30, "low_stock_threshold": 5},
    {"name": "Lisinopril", "dosage": "10mg", "time": "20:00", "total_stock": 7, "low_stock_threshold": 5},
]


def run():
    init_db()
    with Session(engine) as s:
        users = {}
        for u in USERS:
            user = s.exec(select(User).where(User.email == u["email"])).first()
            if not user:
                user = User(email=u["email"], full_name=u["full_name"], role=u["role"], hashed_password=hash_password(u["password"]))
                s.add(user)
                s.flush()
            users[u["role"]] = user

        elderly, caregiver = users["elderly_user"], users["caregiver"]
        link = s.exec(
            select(CaregiverLink)
            .where(CaregiverLink.caregiver_id == caregiver.id)
            .where(CaregiverLink.elderly_user_id == elderly.id)
        ).first()
        if not link:
            s.add(CaregiverLink(caregiver_id=caregiver.id, elderly_user_id=elderly.id))

        if not s.exec(select(Medication).where(Medication.user_id == elderly.id)).first():
            for m in MEDICATIONS:
                s.add(Medication(user_id=elderly.id, **m))
        s.commit()
    print("Seed complete")


if __name__ == "__main__":
    run()
