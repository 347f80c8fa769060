import datetime
import logging
import math

from django.conf import settings
from pymongo import ASCENDING, DESCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError
from rest_framework import status
from rest_framework.exceptions import NotFound, ValidationError
from rest_framework.response import Response
from rest_framework.views import APIView

from . import mailer, payments
from .auth_utils import authenticate_request, optional_authentication, require_role
from .badges import award_badge, badge_summary
from .constants import (
    DONATION_INTERVAL_DAYS, FEEDBACK_EXPERIENCES, FEEDBACK_WAIT_TIMES,
    SOS_STATUSES, VOLUNTEER_STATUSES,
)
from .db import as_utc, get_db, now, serialize_doc, to_object_id
from .disaster import create_disaster_alert, get_active_alert, resolve_disaster_alerts

logger = logging.getLogger(__name__)


# ==========================================
#  DISASTER ALERTS
# ==========================================

class DisasterAlertView(APIView):
    def get(self, request):
        return Response({"activeAlert": get_active_alert(get_db())})

    @authenticate_request
    @require_role('admin')
    def post(self, request):
        db = get_db()
        action = request.data.get('action')

        if action == 'create':
            if not request.data.get('title'):
                return Response({"error": "title is required"}, status=400)
            alert = create_disaster_alert(db, request.data, request.user_id)
            return Response({"success": True, "alert": alert})

        if action == 'resolve':
            resolve_disaster_alerts(db)
            return Response({"success": True})

        return Response({"error": "Invalid action"}, status=400)


# ==========================================
#  BADGES & LEADERBOARD
# ==========================================

class BadgeView(APIView):
    @authenticate_request
    def get(self, request):
        user_id = request.query_params.get('userId') or request.user_id
        return Response(badge_summary(get_db(), user_id))

    @authenticate_request
    @require_role('admin')
    def post(self, request):
        badge = award_badge(get_db(), request.data.get('userId'), request.data.get('badgeType'))
        return Response({"badge": badge})


class LeaderboardView(APIView):
    def get(self, request):
        db = get_db()
        top_donors = db.users.find(
            {"role": "donor"},
            {"name": 1, "points": 1, "donationCount": 1, "bloodGroup": 1}
        ).sort([("points", DESCENDING), ("donationCount", DESCENDING)]).limit(10)
        return Response([serialize_doc(u) for u in top_donors])


# ==========================================
#  FEEDBACK
# ==========================================

def _score(data, field):
    value = data.get(field)
    if isinstance(value, bool) or not isinstance(value, int) or not 1 <= value <= 5:
        raise ValidationError(f"{field} must be between 1 and 5")
    return value


class FeedbackView(APIView):
    @authenticate_request
    def get(self, request):
        db = get_db()
        params = request.query_params

        if request.user_role == 'admin' and params.get('all') == 'true':
            feedbacks = [serialize_doc(f) for f in db.feedback.find().sort("createdAt", DESCENDING)]
            donor_ids = [to_object_id(f.get('donorId')) for f in feedbacks]
            donors = {str(u['_id']): serialize_doc(u) for u in db.users.find(
                {"_id": {"$in": [d for d in donor_ids if d]}},
                {"name": 1, "email": 1, "bloodGroup": 1, "phone": 1}
            )}
            for f in feedbacks:
                f['donor'] = donors.get(f.get('donorId'))
            return Response(feedbacks)

        if params.get('appointmentId'):
            feedback = db.feedback.find_one({"appointment": params['appointmentId'], "donorId": request.user_id})
            return Response(serialize_doc(feedback))

        feedbacks = db.feedback.find({"donorId": request.user_id}).sort("createdAt", DESCENDING)
        return Response([serialize_doc(f) for f in feedbacks])

    @authenticate_request
    def post(self, request):
        db = get_db()
        data = request.data

        required = ['appointmentId', 'rating', 'experience', 'staffBehavior', 'cleanliness', 'waitTime']
        if any(not data.get(f) for f in required) or data.get('wouldRecommend') is None:
            return Response({"error": "All feedback fields are required"}, status=400)
        if data['experience'] not in FEEDBACK_EXPERIENCES:
            return Response({"error": "Invalid experience"}, status=400)
        if data['waitTime'] not in FEEDBACK_WAIT_TIMES:
            return Response({"error": "Invalid waitTime"}, status=400)

        appt_oid = to_object_id(data['appointmentId'])
        appointment = db.appointments.find_one({
            "_id": appt_oid,
            "donorId": request.user_id,
            "status": "completed",
        }) if appt_oid else None
        if not appointment:
            return Response({"error": "Appointment not found or not completed"}, status=404)

        feedback = {
            "donorId": request.user_id,
            "appointment": str(appt_oid),
            "rating": _score(data, 'rating'),
            "experience": data['experience'],
            "staffBehavior": _score(data, 'staffBehavior'),
            "cleanliness": _score(data, 'cleanliness'),
            "waitTime": data['waitTime'],
            "wouldRecommend": bool(data['wouldRecommend']),
            "comments": data.get('comments', ''),
            "suggestions": data.get('suggestions', ''),
            "createdAt": now(),
        }
        try:
            res = db.feedback.insert_one(feedback)
        except DuplicateKeyError:
            return Response({"error": "Feedback already submitted for this donation"}, status=400)
        feedback['_id'] = res.inserted_id

        db.appointments.update_one({"_id": appt_oid}, {"$set": {"feedbackSubmitted": True}})

        admin_email = settings.ADMIN_EMAIL or settings.EMAIL_HOST_USER
        if admin_email:
            bank = db.bloodbanks.find_one({"_id": to_object_id(appointment.get('bloodBankId'))}, {"name": 1}) or {}
            try:
                mailer.send_feedback_notification(
                    admin_email, request.user_data, bank.get('name', 'Unknown Blood Bank'), feedback
                )
            except Exception:
                logger.exception("Failed to send feedback notification email")

        return Response(serialize_doc(feedback), status=status.HTTP_201_CREATED)


# ==========================================
#  REMINDERS
# ==========================================

POST_DONATION_REMINDERS = [
    (datetime.timedelta(0), 'Post-Donation Care Tips',
     'Thank you for donating! Rest for 15 minutes, drink plenty of fluids, avoid heavy exercise today '
     'and eat iron-rich foods.'),
    (datetime.timedelta(hours=24), 'How are you feeling?',
     "It's been 24 hours since your donation. Make sure you're drinking enough water and eating well. "
     "If you feel dizzy or unwell, please rest."),
    (datetime.timedelta(days=7), 'Your Blood is Saving Lives!',
     'Your donated blood has likely already been processed and may have helped save up to 3 lives!'),
]


def last_completed_donation(db, user_id):
    return db.appointments.find_one(
        {"donorId": user_id, "status": "completed"},
        sort=[("date", DESCENDING)]
    )


def donation_eligibility(last_donation, current=None):
    """Next eligible date after the whole-blood interval, and how many days away it is."""
    current = current or now()
    if not last_donation or not last_donation.get('date'):
        return {"lastDonation": None, "nextEligibleDate": None, "daysUntilEligible": 0, "canDonateNow": True}

    last = as_utc(last_donation['date'])
    next_date = last + datetime.timedelta(days=DONATION_INTERVAL_DAYS)
    days = max(0, math.ceil((next_date - current).total_seconds() / 86400))
    return {
        "lastDonation": last,
        "nextEligibleDate": next_date,
        "daysUntilEligible": days,
        "canDonateNow": days <= 0,
    }


class ReminderView(APIView):
    @authenticate_request
    def get(self, request):
        db = get_db()
        query = {"userId": request.user_id}
        if request.query_params.get('status'):
            query['status'] = request.query_params['status']

        reminders = db.reminders.find(query).sort("scheduledFor", ASCENDING).limit(20)
        return Response({
            "reminders": [serialize_doc(r) for r in reminders],
            "eligibility": donation_eligibility(last_completed_donation(db, request.user_id)),
        })

    def _create(self, db, user_id, kind, title, message, scheduled_for, channel, metadata=None):
        db.reminders.insert_one({
            "userId": user_id,
            "type": kind,
            "title": title,
            "message": message,
            "scheduledFor": scheduled_for,
            "sentAt": None,
            "status": "pending",
            "channel": channel,
            "metadata": metadata or {},
            "createdAt": now(),
        })

    @authenticate_request
    def post(self, request):
        db = get_db()
        data = request.data
        action = data.get('action')
        channel = data.get('channel') or 'email'

        if action == 'setup_donation_reminder':
            last = last_completed_donation(db, request.user_id)
            if last and last.get('date'):
                eligible = donation_eligibility(last)['nextEligibleDate']
                existing = db.reminders.find_one({
                    "userId": request.user_id,
                    "type": "donation_due",
                    "scheduledFor": {"$gte": now()},
                    "status": "pending",
                })
                if not existing:
                    self._create(
                        db, request.user_id, 'donation_due', 'Time to Donate Again!',
                        f"You're now eligible to donate blood again. Your last donation was on "
                        f"{as_utc(last['date']).strftime('%d %b %Y')}. Schedule your next appointment today!",
                        eligible - datetime.timedelta(days=3), channel,
                    )
            return Response({"success": True, "message": "Donation reminder set up"})

        if action == 'create_appointment_reminder':
            appt_oid = to_object_id(data.get('appointmentId'))
            appointment = db.appointments.find_one({"_id": appt_oid}) if appt_oid else None
            if not appointment:
                raise NotFound("Appointment not found")

            bank = db.bloodbanks.find_one({"_id": to_object_id(appointment.get('bloodBankId'))}, {"name": 1}) or {}
            try:
                hours = float(data.get('reminderTime') or 24)
                if not math.isfinite(hours):
                    raise ValueError(hours)
            except (TypeError, ValueError):
                return Response({"error": "reminderTime must be a number"}, status=400)
            when = as_utc(appointment['date'])
            self._create(
                db, request.user_id, 'appointment_reminder', 'Donation Appointment Tomorrow',
                f"Don't forget your blood donation appointment at {bank.get('name', 'Blood Bank')} on "
                f"{when.strftime('%d %b %Y')} at {appointment.get('timeSlot')}.",
                when - datetime.timedelta(hours=hours), channel,
                {"appointmentId": str(appt_oid)},
            )
            return Response({"success": True, "message": "Appointment reminder created"})

        if action == 'create_post_donation_reminder':
            start = now()
            for delay, title, message in POST_DONATION_REMINDERS:
                self._create(db, request.user_id, 'post_donation_care', title, message, start + delay, 'in_app')
            return Response({"success": True, "message": "Post-donation reminders created"})

        return Response({"error": "Invalid action"}, status=400)

    @authenticate_request
    def delete(self, request):
        db = get_db()
        reminder_id = request.query_params.get('id')
        if not reminder_id:
            return Response({"error": "Reminder ID required"}, status=400)

        oid = to_object_id(reminder_id)
        result = db.reminders.update_one(
            {"_id": oid, "userId": request.user_id},
            {"$set": {"status": "cancelled"}}
        ) if oid else None
        if not result or result.matched_count == 0:
            raise NotFound("Reminder not found")
        return Response({"success": True, "message": "Reminder cancelled"})


# ==========================================
#  EMERGENCY SOS
# ==========================================

class SOSListView(APIView):
    def get(self, request):
        db = get_db()
        alerts = [serialize_doc(a) for a in db.emergency_alerts.find({"status": "active"}).sort("createdAt", DESCENDING)]

        user_ids = [to_object_id(a.get('userId')) for a in alerts if a.get('userId')]
        users = {str(u['_id']): serialize_doc(u) for u in db.users.find(
            {"_id": {"$in": [u for u in user_ids if u]}},
            {"name": 1, "email": 1, "phone": 1, "bloodGroup": 1}
        )}
        for alert in alerts:
            alert['user'] = users.get(alert.get('userId'))
        return Response(alerts)

    @optional_authentication
    def post(self, request):
        db = get_db()
        data = request.data

        if not data.get('location'):
            return Response({"error": "location is required"}, status=400)

        alert = {
            "userId": request.user_id,
            "location": data['location'],
            "contactNumber": data.get('contactNumber'),
            "message": data.get('message') or 'Emergency SOS Triggered',
            "status": "active",
            "createdAt": now(),
            "resolvedAt": None,
        }
        res = db.emergency_alerts.insert_one(alert)
        logger.warning("SOS triggered (alert %s, user %s)", res.inserted_id, request.user_id)
        return Response({"success": True, "alertId": str(res.inserted_id)}, status=status.HTTP_201_CREATED)


class SOSDetailView(APIView):
    def patch(self, request, alert_id):
        db = get_db()
        new_status = request.data.get('status')
        if new_status not in SOS_STATUSES:
            return Response({"error": "Invalid status"}, status=400)

        changes = {"status": new_status}
        changes['resolvedAt'] = now() if new_status in ('resolved', 'false_alarm') else None

        oid = to_object_id(alert_id)
        alert = db.emergency_alerts.find_one_and_update(
            {"_id": oid}, {"$set": changes}, return_document=ReturnDocument.AFTER
        ) if oid else None
        if not alert:
            raise NotFound("Alert not found")
        return Response(serialize_doc(alert))


# ==========================================
#  CAMPS & VOLUNTEERS
# ==========================================

class CampView(APIView):
    required_fields = [
        'organizerName', 'organizationName', 'email', 'phone',
        'expectedDonors', 'proposedDate', 'venue', 'city',
    ]

    def get(self, request):
        db = get_db()
        return Response([serialize_doc(c) for c in db.camps.find().sort("createdAt", DESCENDING)])

    def post(self, request):
        db = get_db()
        data = request.data
        for field in self.required_fields:
            if not data.get(field):
                return Response({"error": f"Missing required field: {field}"}, status=400)

        camp = {field: data[field] for field in self.required_fields}
        camp.update({
            "message": data.get('message', ''),
            "status": "pending",
            "createdAt": now(),
        })
        res = db.camps.insert_one(camp)
        camp['_id'] = res.inserted_id
        return Response(serialize_doc(camp), status=status.HTTP_201_CREATED)


class VolunteerJoinView(APIView):
    def post(self, request):
        db = get_db()
        data = request.data

        for field in ('name', 'email', 'phone'):
            if not data.get(field):
                return Response({"error": f"{field} is required"}, status=400)

        volunteer = {
            "name": data['name'],
            "email": data['email'],
            "phone": data['phone'],
            "address": data.get('address', ''),
            "reason": data.get('reason', ''),
            "status": "pending",
            "createdAt": now(),
        }
        db.volunteers.insert_one(volunteer)
        logger.info("New volunteer application from %s", volunteer['email'])

        try:
            sent = mailer.send_volunteer_application(settings.VOLUNTEER_INBOX, volunteer)
        except Exception:
            logger.exception("Failed to forward volunteer application")
            return Response({"message": "Application received (Email failed to send)"})

        if not sent:
            return Response({"message": "Application received (Simulation Mode)"})
        return Response({"message": "Application sent successfully"})


class AdminVolunteerListView(APIView):
    @authenticate_request
    @require_role('admin')
    def get(self, request):
        db = get_db()
        return Response([serialize_doc(v) for v in db.volunteers.find().sort("createdAt", DESCENDING)])


class AdminVolunteerDetailView(APIView):
    @authenticate_request
    @require_role('admin')
    def put(self, request, volunteer_id):
        db = get_db()
        new_status = request.data.get('status')
        if new_status not in VOLUNTEER_STATUSES:
            return Response({"error": "Invalid status"}, status=400)

        oid = to_object_id(volunteer_id)
        volunteer = db.volunteers.find_one_and_update(
            {"_id": oid}, {"$set": {"status": new_status}}, return_document=ReturnDocument.AFTER
        ) if oid else None
        if not volunteer:
            raise NotFound("Volunteer application not found")

        if new_status in ('approved', 'rejected'):
            try:
                mailer.send_volunteer_decision(volunteer, new_status)
            except Exception:
                logger.exception("Error sending volunteer status email to %s", volunteer.get('email'))

        return Response(serialize_doc(volunteer))

    @authenticate_request
    @require_role('admin')
    def delete(self, request, volunteer_id):
        db = get_db()
        oid = to_object_id(volunteer_id)
        result = db.volunteers.delete_one({"_id": oid}) if oid else None
        if not result or result.deleted_count == 0:
            raise NotFound("Volunteer application not found")
        return Response({"message": "Volunteer application deleted successfully"})


# ==========================================
#  MONEY DONATIONS
# ==========================================

class PaymentIntentView(APIView):
    def post(self, request):
        amount = request.data.get('amount')
        try:
            if amount is None or float(amount) <= 0:
                raise ValueError
        except (TypeError, ValueError):
            return Response({"error": "A positive amount is required"}, status=400)

        try:
            order = payments.create_order(amount)
        except Exception:
            logger.exception("Payment order creation failed")
            return Response({"error": "Error creating order"}, status=500)
        return Response(order)


class DonationSuccessView(APIView):
    def post(self, request):
        data = request.data
        if not data.get('email') or not data.get('amount') or not data.get('paymentId'):
            return Response({"error": "Missing required fields"}, status=400)

        mailer.send_money_donation_thanks(data['email'], data['amount'], data['paymentId'])
        return Response({"success": True})
