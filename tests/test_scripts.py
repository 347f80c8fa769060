import datetime

from django.contrib.auth.hashers import check_password

from api.db import as_utc
from create_production_admin import create_admin
from seed_bloodbanks import SAMPLE_BANKS, seed_bloodbanks
from sync_donation_data import sync_data


def test_sync_reconciles_drifted_counters(mongo, make_user, make_bank, make_appointment):
    bank = make_bank()
    drifted = make_user(donationCount=3, points=150)
    in_sync = make_user()
    last = datetime.datetime(2024, 3, 1, tzinfo=datetime.timezone.utc)
    make_appointment(drifted, bank, status='completed', date=last - datetime.timedelta(days=90))
    make_appointment(drifted, bank, status='completed', date=last)
    make_appointment(drifted, bank, status='cancelled', date=last + datetime.timedelta(days=60))

    assert sync_data(mongo) == 1

    stored = mongo.users.find_one({"_id": drifted['_id']})
    assert stored['donationCount'] == 2
    assert as_utc(stored['lastDonationDate']) == last
    assert stored['points'] == 150
    assert mongo.users.find_one({"_id": in_sync['_id']})['donationCount'] == 0

    assert sync_data(mongo) == 0


def test_seed_only_fills_an_empty_collection(mongo):
    assert seed_bloodbanks(mongo) == len(SAMPLE_BANKS)
    assert seed_bloodbanks(mongo) == 0

    bank = mongo.bloodbanks.find_one()
    assert set(bank['stock']) == {'A+', 'A-', 'B+', 'B-', 'AB+', 'AB-', 'O+', 'O-'}
    assert bank['status'] == 'Active'


def test_create_admin_is_verified_and_hashed(mongo, api_client):
    create_admin("Root@Jeevan.test", "topsecret", db=mongo)
    admin = create_admin("root@jeevan.test", "newsecret", db=mongo)

    assert mongo.users.count_documents({"role": "admin"}) == 1
    assert admin['isVerified'] is True
    assert check_password("newsecret", admin['password'])

    res = api_client().post("/api/auth/login/", {"email": "root@jeevan.test", "password": "newsecret"}, format='json')
    assert res.status_code == 200
    assert res.json()['role'] == 'admin'
