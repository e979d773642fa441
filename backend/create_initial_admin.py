# backend/create_initial_admin.py

import os

from hrdc.database import WriteSessionLocal
from hrdc.apps.accounts import services as account_services
from hrdc.apps.accounts.models import AccountRole


def main() -> None:
    db = WriteSessionLocal()
    try:
        email = os.getenv("HRDC_ADMIN_EMAIL", "admin@hrdc.local")
        password = os.getenv("HRDC_ADMIN_PASSWORD", "ChangeMe123!")

        # Check if it already exists
        if account_services.email_in_use(db, email):
            print(f"[INFO] User already exists: email={account_services.normalise_email(email)}")
            return

        user = account_services.create_user(
            db,
            email=email,
            password=password,
            role=AccountRole.ADMIN,
        )

        print("[OK] Created admin user:")
        print(f"  id:      {user.id}")
        print(f"  email:   {user.email}")
        print(f"  role:    {user.role.value}")
        print(f"  login password: {password}")
    finally:
        db.close()


if __name__ == "__main__":
    main()
