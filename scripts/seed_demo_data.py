"""
Seed the local database with a demo municipality and one user per role.

Usage:
  python scripts/seed_demo_data.py

This script is idempotent: running it multiple times will upsert the same
records based on unique fields (email for users, name + city for municipalities).
"""

from municipal_feedback.db import SessionLocal, Base, engine
from municipal_feedback.models.models import Municipality, User, UserRole
from municipal_feedback.auth.security import get_password_hash


def ensure_municipality(session, name: str, city: str, **kwargs) -> Municipality:
    row = session.query(Municipality).filter(Municipality.name == name, Municipality.city == city).first()
    if row:
        for k, v in kwargs.items():
            setattr(row, k, v)
        session.flush()
        return row
    row = Municipality(name=name, city=city, **kwargs)
    session.add(row)
    session.flush()
    return row


def ensure_user(session, email: str, password: str, name: str, role: UserRole, municipality_id=None) -> User:
    user = session.query(User).filter(User.email == email).first()
    if user:
        # Demo accounts always get their documented password back
        user.password_hash = get_password_hash(password)
        user.name = name
        user.role = role.value
        user.municipality_id = municipality_id
        session.flush()
        return user
    user = User(
        email=email,
        password_hash=get_password_hash(password),
        name=name,
        role=role.value,
        municipality_id=municipality_id,
    )
    session.add(user)
    session.flush()
    return user


def main() -> None:
    # Ensure tables exist (safe for SQLite dev)
    Base.metadata.create_all(bind=engine)

    session = SessionLocal()
    try:
        town = ensure_municipality(
            session,
            "Test Municipality",
            "Test City",
            state="Test State",
            country="Test Country",
            contact_email="contact@test-municipality.com",
        )
        admin = ensure_user(session, "admin@test.com", "admin123", "Admin User", UserRole.ADMIN, town.id)
        staff = ensure_user(session, "staff@test.com", "staff123", "Municipality Staff", UserRole.MUNICIPALITY_ADMIN, town.id)
        citizen = ensure_user(session, "citizen@test.com", "citizen123", "Test Citizen", UserRole.USER, town.id)
        session.commit()
        print("Seed complete:")
        print(f"  Municipality: {town.name} ({town.id})")
        for u in (admin, staff, citizen):
            print(f"  {u.role:<18} {u.email}")
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


if __name__ == "__main__":
    main()
