# backend/create_initial_admin.py

import os

from opnamedb.database import WriteSessionLocal
from opnamedb.apps.accounts import services as account_services
from opnamedb.apps.accounts.models import AccountRole
from opnamedb.apps.accounts.schemas import UserCreate


def main() -> None:
    db = WriteSessionLocal()
    try:
        email = os.getenv("INITIAL_ADMIN_EMAIL", "admin@example.com")
        password = os.getenv("INITIAL_ADMIN_PASSWORD", "ChangeMe123!")

        existing = account_services.get_user_by_email(db, email)
        if existing:
            print(f"[INFO] User already exists: id={existing.id}, email={existing.email}")
            return

        user = account_services.create_user(
            db,
            UserCreate(email=email, full_name="Opname Admin", role=AccountRole.ADMIN, password=password),
        )
        db.commit()
        db.refresh(user)

        print("[OK] Created admin user:")
        print(f"  id:      {user.id}")
        print(f"  email:   {user.email}")
        print(f"  role:    {user.role}")
        print(f"  login password: {password}")
    finally:
        db.close()


if __name__ == "__main__":
    main()
