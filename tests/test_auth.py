import datetime
from unittest import mock

import jwt
from django.conf import settings

from api.db import now

REGISTRATION = {
    "name": "Asha Rao",
    "email": "Asha@Example.com",
    "password": "s3cret-pass",
    "bloodGroup": "O+",
    "phone": "9876543210",
}


def register_and_verify(client, mongo, **overrides):
    body = dict(REGISTRATION, **overrides)
    client.post("/api/register/", body, format='json')
    user = mongo.users.find_one({"email": body['email'].lower()})
    client.post("/api/register/verify/", {"email": user['email'], "otp": user['otp']}, format='json')
    return user


def test_register_stores_hashed_password_and_otp(mongo, api_client, mailoutbox):
    res = api_client().post("/api/register/", REGISTRATION, format='json')

    assert res.status_code == 201
    assert res.json()['email'] == "asha@example.com"
    user = mongo.users.find_one({"email": "asha@example.com"})
    assert user['password'] != REGISTRATION['password']
    assert len(user['otp']) == 6 and user['otp'].isdigit()
    assert user['isVerified'] is False
    assert user['role'] == 'donor'
    assert len(mailoutbox) == 1
    assert user['otp'] in mailoutbox[0].body


def test_admin_self_registration_is_forbidden(api_client):
    res = api_client().post("/api/register/", dict(REGISTRATION, role='admin'), format='json')
    assert res.status_code == 403


def test_register_validates_input(api_client):
    client = api_client()
    assert client.post("/api/register/", {"email": "x@y.z"}, format='json').status_code == 400
    assert client.post("/api/register/", dict(REGISTRATION, bloodGroup='C+'), format='json').status_code == 400


def test_unverified_registration_is_overwritten(mongo, api_client):
    client = api_client()
    client.post("/api/register/", REGISTRATION, format='json')
    client.post("/api/register/", dict(REGISTRATION, name="Asha R."), format='json')

    users = list(mongo.users.find({"email": "asha@example.com"}))
    assert len(users) == 1
    assert users[0]['name'] == "Asha R."


def test_verified_email_cannot_register_again(mongo, api_client):
    client = api_client()
    register_and_verify(client, mongo)

    res = client.post("/api/register/", REGISTRATION, format='json')
    assert res.status_code == 400
    assert res.json()['error'] == "User already exists"


def test_verify_rejects_wrong_and_expired_otp(mongo, api_client):
    client = api_client()
    client.post("/api/register/", REGISTRATION, format='json')

    res = client.post("/api/register/verify/", {"email": "asha@example.com", "otp": "000000x"}, format='json')
    assert res.status_code == 400

    user = mongo.users.find_one({"email": "asha@example.com"})
    mongo.users.update_one({"_id": user['_id']}, {"$set": {"otpExpiry": now() - datetime.timedelta(minutes=1)}})
    res = client.post("/api/register/verify/", {"email": "asha@example.com", "otp": user['otp']}, format='json')
    assert res.status_code == 400
    assert res.json()['error'] == "OTP expired"


def test_verify_then_login_returns_token(mongo, api_client):
    client = api_client()
    register_and_verify(client, mongo)

    stored = mongo.users.find_one({"email": "asha@example.com"})
    assert stored['isVerified'] is True
    assert 'otp' not in stored

    res = client.post("/api/auth/login/", {"email": "asha@example.com", "password": "s3cret-pass"}, format='json')
    assert res.status_code == 200
    body = res.json()
    assert 'password' not in body
    payload = jwt.decode(body['token'], settings.SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    assert payload['id'] == body['id']
    assert payload['role'] == 'donor'
    assert payload['email'] == "asha@example.com"


def test_login_rejects_bad_password_and_unverified(mongo, api_client):
    client = api_client()
    client.post("/api/register/", REGISTRATION, format='json')

    res = client.post("/api/auth/login/", {"email": "asha@example.com", "password": "s3cret-pass"}, format='json')
    assert res.status_code == 403

    res = client.post("/api/auth/login/", {"email": "asha@example.com", "password": "nope"}, format='json')
    assert res.status_code == 401


def test_protected_endpoint_error_codes(mongo, make_user, api_client):
    client = api_client()
    res = client.get("/api/profile/")
    assert res.status_code == 401
    assert res.json()['code'] == 'AUTH_REQUIRED'

    client.credentials(HTTP_AUTHORIZATION="Bearer not-a-jwt")
    res = client.get("/api/profile/")
    assert res.status_code == 401
    assert res.json()['code'] == 'INVALID_TOKEN'

    user = make_user()
    client = api_client(user)
    mongo.users.delete_one({"_id": user['_id']})
    res = client.get("/api/profile/")
    assert res.status_code == 401
    assert res.json()['code'] == 'USER_NOT_FOUND'


def test_expired_token(make_user, api_client):
    user = make_user()
    expired = jwt.encode(
        {"id": str(user['_id']), "role": "donor", "exp": now() - datetime.timedelta(hours=1)},
        settings.SECRET_KEY, algorithm=settings.JWT_ALGORITHM,
    )
    client = api_client()
    client.credentials(HTTP_AUTHORIZATION=f"Bearer {expired}")

    res = client.get("/api/profile/")
    assert res.status_code == 401
    assert res.json()['code'] == 'TOKEN_EXPIRED'


def test_profile_update_ignores_protected_fields(mongo, make_user, api_client):
    user = make_user(bloodGroup='A+', points=10)

    res = api_client(user).put("/api/profile/", {
        "name": "New Name",
        "isAvailable": False,
        "role": "admin",
        "points": 9999,
        "email": "hijack@jeevan.test",
        "password": "changed",
    }, format='json')

    assert res.status_code == 200
    stored = mongo.users.find_one({"_id": user['_id']})
    assert stored['name'] == "New Name"
    assert stored['isAvailable'] is False
    assert stored['role'] == 'donor'
    assert stored['points'] == 10
    assert stored['email'] == user['email']
    assert stored['password'] == user['password']


def test_health_endpoint(api_client):
    assert api_client().get("/api/health/").json() == {"status": "ok"}


def test_unexpected_errors_become_generic_500(make_user, api_client):
    with mock.patch('api.ext_views.badge_summary', side_effect=KeyError("boom")):
        res = api_client(make_user()).get("/api/badges/")

    assert res.status_code == 500
    assert res.json() == {"error": "Internal Server Error", "code": "INTERNAL"}
