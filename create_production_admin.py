import os
import sys

import django

# Setup Django Environment
os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'config.settings')
django.setup()

from django.contrib.auth.hashers import make_password

from api.db import get_db, now


def create_admin(email, password, name="Super Admin", db=None):
    db = db if db is not None else get_db()
    email = email.strip().lower()

    admin_user = {
        "name": name,
        "email": email,
        "password": make_password(password),
        "role": "admin",
        "phone": "0000000000",
        "isVerified": True,
    }

    # Update or Insert
    db.users.update_one(
        {"email": email},
        {"$set": admin_user, "$setOnInsert": {"createdAt": now(), "hospitalIds": []}},
        upsert=True
    )
    return db.users.find_one({"email": email})


if __name__ == "__main__":
    admin_email = os.getenv('ADMIN_EMAIL')
    admin_password = os.getenv('ADMIN_PASSWORD')
    if not admin_email or not admin_password:
        print("Set ADMIN_EMAIL and ADMIN_PASSWORD in the environment first.")
        sys.exit(1)

    create_admin(admin_email, admin_password, os.getenv('ADMIN_NAME', 'Super Admin'))
    print(f"SUCCESS: Admin user {admin_email} created/updated!")
