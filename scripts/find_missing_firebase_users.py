from sqlmodel import Session, func, select

from core.firebase import firestore_client
from db.session import engine
from models.check_in_session import CheckInSession


# 1. Every provider that has ever checked in
def get_all_session_user_ids():
    with Session(engine) as session:
        return session.exec(select(CheckInSession.user_id).distinct()).all()


# 2. Does the Firestore profile still exist
def firebase_user_exists(db, user_id):
    return db.collection("users").document(user_id).get().exists


# 3. Session count and most recent check-in for a user
def get_session_activity(user_id):
    with Session(engine) as session:
        count = session.exec(
            select(func.count())
            .select_from(CheckInSession)
            .where(CheckInSession.user_id == user_id)
        ).one()
        last = session.exec(
            select(CheckInSession)
            .where(CheckInSession.user_id == user_id)
            .order_by(CheckInSession.check_in_time.desc())
        ).first()
        return count, last


def main():
    print("Finding session owners missing from Firebase...")
    db = firestore_client()
    missing = []
    for user_id in get_all_session_user_ids():
        if firebase_user_exists(db, user_id):
            continue
        count, last = get_session_activity(user_id)
        missing.append({
            "user_id": user_id,
            "sessions": count,
            "last_check_in": last.check_in_time.isoformat() if last else None,
            "last_school_id": last.school_id if last else None,
        })
    print(f"\nUsers not found in Firebase: {len(missing)}")
    for entry in missing:
        print(entry)


if __name__ == "__main__":
    main()
