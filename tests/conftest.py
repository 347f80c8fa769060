import datetime
import itertools

import mongomock
import pytest
from bson import ObjectId
from django.contrib.auth.hashers import make_password
from rest_framework.test import APIClient

from api import db as db_module
from api.auth_utils import issue_token
from api.constants import empty_stock
from api.db import now

_seq = itertools.count(1)


@pytest.fixture(autouse=True)
def mongo():
    database = mongomock.MongoClient().blood_donation_test
    db_module.ensure_indexes(database)
    db_module.set_db(database)
    yield database
    db_module.set_db(None)


@pytest.fixture(autouse=True)
def test_settings(settings):
    settings.PASSWORD_HASHERS = ['django.contrib.auth.hashers.MD5PasswordHasher']
    settings.ADMIN_EMAIL = 'admin-inbox@jeevan.test'
    settings.VOLUNTEER_INBOX = 'volunteers@jeevan.test'
    settings.GEMINI_API_KEY = ''
    settings.RAZORPAY_KEY_ID = ''
    settings.RAZORPAY_KEY_SECRET = ''
    settings.BROADCAST_WORKERS = 4
    return settings


@pytest.fixture
def make_user(mongo):
    def _make(role='donor', **fields):
        n = next(_seq)
        user = {
            "name": f"{role.title()} {n}",
            "email": f"{role}{n}@jeevan.test",
            "password": make_password("secret123"),
            "role": role,
            "phone": f"98000{n:05d}",
            "bloodGroup": None,
            "isAvailable": True,
            "isVerified": True,
            "donationCount": 0,
            "points": 0,
            "hospitalIds": [],
            "createdAt": now(),
        }
        user.update(fields)
        user.setdefault("_id", ObjectId())
        mongo.users.insert_one(user)
        return user
    return _make


@pytest.fixture
def make_bank(mongo):
    def _make(**fields):
        n = next(_seq)
        bank = {
            "name": f"Blood Bank {n}",
            "email": f"bank{n}@jeevan.test",
            "phone": "0801234567",
            "address": {"street": "1 Main Rd", "city": "Bangalore", "state": "Karnataka", "zip": "560001"},
            "location": {"lat": 12.9716, "lng": 77.5946},
            "stock": empty_stock(),
            "admins": [],
            "status": "Active",
            "createdAt": now(),
        }
        bank.update(fields)
        bank.setdefault("_id", ObjectId())
        mongo.bloodbanks.insert_one(bank)
        return bank
    return _make


@pytest.fixture
def make_appointment(mongo):
    def _make(donor, bank, status='pending', date=None, **fields):
        appt = {
            "donorId": str(donor['_id']),
            "bloodBankId": str(bank['_id']),
            "date": date or now() + datetime.timedelta(days=3),
            "timeSlot": "10:00",
            "notes": "",
            "status": status,
            "trackingStatus": "collected",
            "feedbackSubmitted": False,
            "createdAt": now(),
        }
        appt.update(fields)
        appt.setdefault("_id", ObjectId())
        mongo.appointments.insert_one(appt)
        return appt
    return _make


@pytest.fixture
def api_client():
    def _client(user=None):
        client = APIClient()
        if user is not None:
            client.credentials(HTTP_AUTHORIZATION=f"Bearer {issue_token(user)}")
        return client
    return _client


@pytest.fixture
def hospital_for(make_user):
    """A hospital account linked to the given bank."""
    def _make(bank, **fields):
        return make_user('hospital', hospitalIds=[str(bank['_id'])], **fields)
    return _make
