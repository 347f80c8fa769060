import pytest

from api.db import now

REQUEST = {
    "patientName": "Ravi Kumar",
    "bloodGroup": "B+",
    "units": 2,
    "hospitalName": "City Hospital",
    "contactNumber": "9000000000",
    "urgency": "urgent",
    "location": {"lat": 12.97, "lng": 77.59},
}


@pytest.fixture
def blood_request(mongo, make_user):
    requester = make_user('recipient')
    doc = dict(REQUEST, requesterId=str(requester['_id']), status='pending', createdAt=now())
    mongo.requests.insert_one(doc)
    return doc, requester


def test_create_request_sets_requester_and_pending(mongo, make_user, api_client):
    recipient = make_user('recipient')

    res = api_client(recipient).post("/api/requests/", REQUEST, format='json')

    assert res.status_code == 201
    body = res.json()
    assert body['requesterId'] == str(recipient['_id'])
    assert body['status'] == 'pending'


def test_create_request_validation(make_user, api_client):
    client = api_client(make_user('recipient'))
    assert client.post("/api/requests/", {"patientName": "X"}, format='json').status_code == 400
    assert client.post("/api/requests/", dict(REQUEST, bloodGroup='Z'), format='json').status_code == 400
    assert client.post("/api/requests/", dict(REQUEST, urgency='whenever'), format='json').status_code == 400


def test_donor_cannot_reject_request(mongo, blood_request, make_user, api_client):
    doc, _ = blood_request

    res = api_client(make_user()).put(f"/api/requests/{doc['_id']}/", {"status": "rejected"}, format='json')

    assert res.status_code == 403
    assert mongo.requests.find_one({"_id": doc['_id']})['status'] == 'pending'


def test_hospital_rejection_emails_requester(mongo, blood_request, make_user, api_client, mailoutbox):
    doc, requester = blood_request

    res = api_client(make_user('hospital')).put(f"/api/requests/{doc['_id']}/", {"status": "rejected"}, format='json')

    assert res.status_code == 200
    assert mongo.requests.find_one({"_id": doc['_id']})['status'] == 'rejected'
    assert [m.to for m in mailoutbox] == [[requester['email']]]


def test_update_only_writes_request_fields(mongo, blood_request, make_user, api_client):
    doc, _ = blood_request

    res = api_client(make_user('admin')).put(
        f"/api/requests/{doc['_id']}/",
        {"status": "approved", "units": 3, "requesterId": "someone-else", "isVip": True},
        format='json',
    )

    assert res.status_code == 200
    stored = mongo.requests.find_one({"_id": doc['_id']})
    assert stored['status'] == 'approved'
    assert stored['units'] == 3
    assert stored['requesterId'] == doc['requesterId']
    assert 'isVip' not in stored


def test_requester_can_edit_non_status_fields(mongo, blood_request, api_client):
    doc, requester = blood_request
    res = api_client(requester).put(f"/api/requests/{doc['_id']}/", {"units": 4}, format='json')
    assert res.status_code == 200
    assert mongo.requests.find_one({"_id": doc['_id']})['units'] == 4


def test_get_includes_requester(blood_request, api_client):
    doc, requester = blood_request
    body = api_client().get(f"/api/requests/{doc['_id']}/").json()
    assert body['requester']['name'] == requester['name']
    assert 'password' not in body['requester']


def test_missing_request_is_404(make_user, api_client):
    client = api_client(make_user('admin'))
    assert client.get("/api/requests/65f000000000000000000000/").status_code == 404
    assert client.put("/api/requests/65f000000000000000000000/", {"units": 1}, format='json').status_code == 404


def test_delete_is_limited_to_requester_or_admin(mongo, blood_request, make_user, api_client):
    doc, requester = blood_request

    assert api_client(make_user()).delete(f"/api/requests/{doc['_id']}/").status_code == 403
    assert api_client(requester).delete(f"/api/requests/{doc['_id']}/").status_code == 200
    assert mongo.requests.count_documents({}) == 0


def test_list_filters(mongo, make_user, api_client):
    client = api_client(make_user('recipient'))
    client.post("/api/requests/", REQUEST, format='json')
    client.post("/api/requests/", dict(REQUEST, bloodGroup='O-', urgency='critical',
                                       location={"lat": 28.61, "lng": 77.21}), format='json')

    anon = api_client()
    assert len(anon.get("/api/requests/").json()) == 2
    assert [r['bloodGroup'] for r in anon.get("/api/requests/?bloodGroup=O-").json()] == ['O-']
    assert [r['urgency'] for r in anon.get("/api/requests/?urgency=urgent").json()] == ['urgent']

    nearby = anon.get("/api/requests/?lat=12.9716&lng=77.5946&radius=5000").json()
    assert [r['bloodGroup'] for r in nearby] == ['B+']
