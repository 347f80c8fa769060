import datetime

import pytest

from api.db import as_utc, now

FEEDBACK = {
    "rating": 5,
    "experience": "excellent",
    "staffBehavior": 4,
    "cleanliness": 5,
    "waitTime": "15_to_30",
    "wouldRecommend": True,
    "comments": "Great staff",
}


@pytest.fixture
def completed(make_user, make_bank, make_appointment):
    donor = make_user(bloodGroup='A+')
    appt = make_appointment(donor, make_bank(name="Lifeline"), status='completed',
                            date=now() - datetime.timedelta(days=10))
    return donor, appt


# ---- feedback ----

def test_feedback_submitted_once(mongo, completed, api_client, mailoutbox):
    donor, appt = completed
    client = api_client(donor)
    body = dict(FEEDBACK, appointmentId=str(appt['_id']))

    res = client.post("/api/feedback/", body, format='json')
    assert res.status_code == 201
    assert mongo.appointments.find_one({"_id": appt['_id']})['feedbackSubmitted'] is True
    assert mailoutbox[0].to == ['admin-inbox@jeevan.test']
    assert 'Lifeline' in mailoutbox[0].alternatives[0][0]

    again = client.post("/api/feedback/", body, format='json')
    assert again.status_code == 400
    assert mongo.feedback.count_documents({}) == 1


def test_feedback_needs_own_completed_appointment(make_user, make_bank, make_appointment, completed, api_client):
    donor, appt = completed
    pending = make_appointment(donor, make_bank(), status='pending')

    res = api_client(donor).post("/api/feedback/", dict(FEEDBACK, appointmentId=str(pending['_id'])), format='json')
    assert res.status_code == 404

    stranger = make_user()
    res = api_client(stranger).post("/api/feedback/", dict(FEEDBACK, appointmentId=str(appt['_id'])), format='json')
    assert res.status_code == 404


@pytest.mark.parametrize("override", [
    {"rating": 6},
    {"cleanliness": 0},
    {"experience": "meh"},
    {"waitTime": "forever"},
    {"wouldRecommend": None},
])
def test_feedback_validation(completed, api_client, override):
    donor, appt = completed
    body = dict(FEEDBACK, appointmentId=str(appt['_id']), **override)
    assert api_client(donor).post("/api/feedback/", body, format='json').status_code == 400


def test_feedback_listing(completed, make_user, api_client):
    donor, appt = completed
    client = api_client(donor)
    client.post("/api/feedback/", dict(FEEDBACK, appointmentId=str(appt['_id'])), format='json')

    assert len(client.get("/api/feedback/").json()) == 1
    assert client.get(f"/api/feedback/?appointmentId={appt['_id']}").json()['rating'] == 5

    everything = api_client(make_user('admin')).get("/api/feedback/?all=true").json()
    assert everything[0]['donor']['name'] == donor['name']


# ---- reminders ----

def test_eligibility_block(completed, make_user, api_client):
    donor, _ = completed

    body = api_client(donor).get("/api/reminders/").json()
    assert body['eligibility']['daysUntilEligible'] == 46
    assert body['eligibility']['canDonateNow'] is False

    fresh = api_client(make_user()).get("/api/reminders/").json()
    assert fresh['eligibility'] == {
        "lastDonation": None, "nextEligibleDate": None, "daysUntilEligible": 0, "canDonateNow": True,
    }


def test_donation_reminder_is_not_duplicated(mongo, completed, api_client):
    donor, appt = completed
    client = api_client(donor)

    for _ in range(2):
        res = client.post("/api/reminders/", {"action": "setup_donation_reminder"}, format='json')
        assert res.status_code == 200

    reminders = list(mongo.reminders.find({"userId": str(donor['_id'])}))
    assert len(reminders) == 1
    expected = as_utc(mongo.appointments.find_one({"_id": appt['_id']})['date']) + datetime.timedelta(days=53)
    assert abs(as_utc(reminders[0]['scheduledFor']) - expected) < datetime.timedelta(seconds=1)
    assert reminders[0]['type'] == 'donation_due'
    assert reminders[0]['status'] == 'pending'


def test_appointment_reminder_before_visit(mongo, make_user, make_bank, make_appointment, api_client):
    donor = make_user()
    appt = make_appointment(donor, make_bank(), date=now() + datetime.timedelta(days=5))

    res = api_client(donor).post("/api/reminders/", {
        "action": "create_appointment_reminder", "appointmentId": str(appt['_id']), "reminderTime": 2,
    }, format='json')

    assert res.status_code == 200
    reminder = mongo.reminders.find_one({"type": "appointment_reminder"})
    stored_date = as_utc(mongo.appointments.find_one({"_id": appt['_id']})['date'])
    assert as_utc(reminder['scheduledFor']) == stored_date - datetime.timedelta(hours=2)
    assert reminder['metadata'] == {"appointmentId": str(appt['_id'])}


def test_appointment_reminder_rejects_non_numeric_lead_time(mongo, make_user, make_bank, make_appointment, api_client):
    donor = make_user()
    appt = make_appointment(donor, make_bank(), date=now() + datetime.timedelta(days=5))
    client = api_client(donor)

    for lead in ("soon", "nan"):
        res = client.post("/api/reminders/", {
            "action": "create_appointment_reminder", "appointmentId": str(appt['_id']), "reminderTime": lead,
        }, format='json')
        assert res.status_code == 400
        assert res.json()['error'] == "reminderTime must be a number"

    assert mongo.reminders.count_documents({}) == 0


def test_post_donation_reminders(mongo, make_user, api_client):
    donor = make_user()
    api_client(donor).post("/api/reminders/", {"action": "create_post_donation_reminder"}, format='json')

    reminders = list(mongo.reminders.find({"userId": str(donor['_id'])}))
    assert len(reminders) == 3
    assert {r['channel'] for r in reminders} == {'in_app'}


def test_unknown_reminder_action(make_user, api_client):
    res = api_client(make_user()).post("/api/reminders/", {"action": "nap"}, format='json')
    assert res.status_code == 400


def test_cancel_only_own_reminder(mongo, make_user, api_client):
    owner, other = make_user(), make_user()
    api_client(owner).post("/api/reminders/", {"action": "create_post_donation_reminder"}, format='json')
    reminder = mongo.reminders.find_one({"userId": str(owner['_id'])})

    assert api_client(other).delete(f"/api/reminders/?id={reminder['_id']}").status_code == 404
    assert api_client(owner).delete("/api/reminders/").status_code == 400
    assert api_client(owner).delete(f"/api/reminders/?id={reminder['_id']}").status_code == 200
    assert mongo.reminders.find_one({"_id": reminder['_id']})['status'] == 'cancelled'


# ---- leaderboard ----

def test_leaderboard_top_ten_by_points(make_user, api_client):
    for points in range(12):
        make_user(points=points * 10, donationCount=points)
    make_user(points=100, donationCount=20)
    make_user('hospital', points=10_000)

    board = api_client().get("/api/leaderboard/").json()

    assert len(board) == 10
    assert board[0]['points'] == 110
    assert board[1]['points'] == 100 and board[1]['donationCount'] == 20
    assert board[2]['points'] == 100 and board[2]['donationCount'] == 10
    assert set(board[0]) == {'id', 'name', 'points', 'donationCount', 'bloodGroup'}
