import os
import random

import django

# Setup Django Environment
os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'config.settings')
django.setup()

from api.constants import BLOOD_GROUPS
from api.db import get_db, now

SAMPLE_BANKS = [
    ("City Central Blood Bank", "Mumbai", "Maharashtra", "400001", 19.0760, 72.8777),
    ("Red Cross Blood Centre", "Delhi", "Delhi", "110001", 28.6139, 77.2090),
    ("Lifeline Blood Bank", "Bangalore", "Karnataka", "560001", 12.9716, 77.5946),
    ("Sankalp Blood Bank", "Chennai", "Tamil Nadu", "600001", 13.0827, 80.2707),
    ("Rotary Blood Bank", "Kolkata", "West Bengal", "700001", 22.5726, 88.3639),
    ("Hope Blood Centre", "Pune", "Maharashtra", "411001", 18.5204, 73.8567),
]


def seed_bloodbanks(db=None):
    db = db if db is not None else get_db()

    if db.bloodbanks.count_documents({}) > 0:
        print("Blood banks already exist, skipping seed.")
        return 0

    banks = []
    for i, (name, city, state, zip_code, lat, lng) in enumerate(SAMPLE_BANKS, start=1):
        banks.append({
            "name": name,
            "email": f"contact{i}@{name.split()[0].lower()}bloodbank.org",
            "phone": f"+91 98{random.randint(10000000, 99999999)}",
            "address": {"street": f"{i} Hospital Road", "city": city, "state": state, "zip": zip_code},
            "location": {"lat": lat, "lng": lng},
            "stock": {group: random.randint(0, 30) for group in BLOOD_GROUPS},
            "admins": [],
            "status": "Active",
            "createdAt": now(),
        })

    db.bloodbanks.insert_many(banks)
    print(f"--- Seeded {len(banks)} blood banks ---")
    return len(banks)


if __name__ == "__main__":
    seed_bloodbanks()
