"""
Reconcile donor counters with their appointment history.

donationCount and lastDonationDate are incremented as appointments complete
and are never rolled back, so they drift when an appointment is moved out of
`completed`. This recomputes both from the completed appointments. Points are
left alone.
"""
import os

import django

# Setup Django Environment
os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'config.settings')
django.setup()

from pymongo import DESCENDING

from api.db import get_db


def sync_data(db=None):
    db = db if db is not None else get_db()
    updated_count = 0

    for u in db.users.find({"role": "donor"}):
        donor_id = str(u['_id'])
        completed = db.appointments.count_documents({"donorId": donor_id, "status": "completed"})
        last_appt = db.appointments.find_one(
            {"donorId": donor_id, "status": "completed"},
            sort=[("date", DESCENDING)]
        )
        last_date = last_appt.get('date') if last_appt else None

        if u.get('donationCount', 0) == completed and u.get('lastDonationDate') == last_date:
            continue

        print(f"Updating {u.get('name')}: count {u.get('donationCount', 0)} -> {completed}, "
              f"last {u.get('lastDonationDate')} -> {last_date}")
        db.users.update_one(
            {"_id": u['_id']},
            {"$set": {"donationCount": completed, "lastDonationDate": last_date}}
        )
        updated_count += 1

    print(f"Sync Complete. Updated {updated_count} users.")
    return updated_count


if __name__ == "__main__":
    sync_data()
