"""Database initialization script with an optional demo account."""

import sys

from sqlalchemy.orm import Session

from festive.database import Base, SessionLocal, engine
from festive.models import User
from festive.services.auth_service import AuthService
from festive.services.repositories import UserRepository

DEMO_EMAIL = "demo@festive.app"
DEMO_PASSWORD = "Password123!"


def create_tables():
    """Create all database tables."""
    print("Creating database tables...")
    Base.metadata.create_all(bind=engine)
    print("Tables created successfully!")


def seed_demo_user(db: Session) -> User:
    """Create a verified demo user without 2FA."""
    repo = UserRepository(db)
    user = repo.create(DEMO_EMAIL, AuthService.hash_password(DEMO_PASSWORD), "Demo Host")
    repo.mark_email_verified(user.id)
    db.commit()
    print(f"  Demo user: {DEMO_EMAIL} / {DEMO_PASSWORD}")
    return user


def init_db(seed: bool = False):
    """Initialize database tables and, if asked, the demo account."""
    print("Initializing database...")
    create_tables()
    if not seed:
        return

    db = SessionLocal()
    try:
        if UserRepository(db).email_exists(DEMO_EMAIL):
            print("\nDemo user already exists. Skipping seed data.")
            return
        seed_demo_user(db)
        print("\nDatabase initialization complete!")
    except Exception as e:
        print(f"\nError during database initialization: {e}")
        db.rollback()
        raise
    finally:
        db.close()


if __name__ == "__main__":
    init_db(seed="--seed" in sys.argv)
