import datetime
import logging
import math
import secrets

from django.conf import settings
from django.contrib.auth.hashers import check_password, make_password
from pymongo import ASCENDING, DESCENDING, ReturnDocument
from rest_framework import status
from rest_framework.exceptions import NotFound, PermissionDenied, ValidationError
from rest_framework.response import Response
from rest_framework.views import APIView

from . import mailer
from .auth_utils import authenticate_request, issue_token, linked_bank_ids, require_role
from .constants import BANK_STATUSES, BLOOD_GROUPS, ROLES, URGENCY_LEVELS, empty_stock
from .db import as_utc, get_db, now, parse_date, serialize_doc, to_object_id
from .transitions import delete_request, update_appointment, update_request

logger = logging.getLogger(__name__)


# Haversine Formula for Distance (km)
def calculate_distance(lat1, lon1, lat2, lon2):
    R = 6371 # Earth radius in km
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = (math.sin(d_lat / 2) * math.sin(d_lat / 2) +
         math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) *
         math.sin(d_lon / 2) * math.sin(d_lon / 2))
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return R * c


def filter_near(docs, lat, lng, radius_m):
    """Keep documents whose location lies within radius_m metres of (lat, lng), nearest first."""
    try:
        u_lat, u_lng, radius_km = float(lat), float(lng), float(radius_m) / 1000
    except (TypeError, ValueError):
        raise ValidationError("lat, lng and radius must be numbers")

    results = []
    for doc in docs:
        loc = doc.get('location') or {}
        if not isinstance(loc, dict) or loc.get('lat') is None or loc.get('lng') is None:
            continue
        dist = calculate_distance(u_lat, u_lng, float(loc['lat']), float(loc['lng']))
        if dist <= radius_km:
            doc['distanceKm'] = round(dist, 2)
            results.append(doc)
    results.sort(key=lambda d: d['distanceKm'])
    return results


def book_appointment(db, donor_id, bank_id, date, time_slot=None, notes=""):
    """Create a pending appointment; shared by the booking form and the chat assistant."""
    bank_oid = to_object_id(bank_id)
    if bank_oid is None or not db.bloodbanks.find_one({"_id": bank_oid}, {"_id": 1}):
        raise ValidationError("Invalid blood bank")

    when = parse_date(date)
    if when is None:
        raise ValidationError("Invalid date")

    appt = {
        "donorId": str(donor_id),
        "bloodBankId": str(bank_oid),
        "date": when,
        "timeSlot": time_slot,
        "notes": notes or "",
        "status": "pending",
        "trackingStatus": "collected",
        "feedbackSubmitted": False,
        "createdAt": now(),
    }
    res = db.appointments.insert_one(appt)
    appt['_id'] = res.inserted_id
    return serialize_doc(appt)


# ---------------- Auth -----------------

class RegisterView(APIView):
    def post(self, request):
        db = get_db()
        data = request.data

        required = ['name', 'email', 'password']
        for field in required:
            if not data.get(field):
                return Response({"error": f"{field} is required"}, status=status.HTTP_400_BAD_REQUEST)

        email = data['email'].strip().lower()
        role = data.get('role') or 'donor'

        # Prevent Admin Registration
        if role == 'admin':
            return Response({"error": "Admin registration is restricted"}, status=status.HTTP_403_FORBIDDEN)
        if role not in ROLES:
            return Response({"error": "Invalid role"}, status=status.HTTP_400_BAD_REQUEST)

        blood_group = data.get('bloodGroup') or None
        if blood_group and blood_group not in BLOOD_GROUPS:
            return Response({"error": "Invalid blood group"}, status=status.HTTP_400_BAD_REQUEST)

        existing = db.users.find_one({"email": email})
        if existing and existing.get('isVerified'):
            return Response({"error": "User already exists"}, status=status.HTTP_400_BAD_REQUEST)

        otp = str(secrets.randbelow(900000) + 100000)
        profile = {
            "name": data['name'],
            "email": email,
            "password": make_password(data['password']),
            "role": role,
            "bloodGroup": blood_group,
            "phone": data.get('phone'),
            "address": data.get('address'),
            "otp": otp,
            "otpExpiry": now() + datetime.timedelta(minutes=settings.OTP_EXPIRY_MINUTES),
            "isVerified": False,
        }

        if existing:
            # Unverified re-registration overwrites the pending account
            db.users.update_one({"_id": existing['_id']}, {"$set": profile})
        else:
            profile.update({
                "isAvailable": True,
                "donationCount": 0,
                "points": 0,
                "hospitalIds": [],
                "createdAt": now(),
            })
            db.users.insert_one(profile)

        if settings.DEBUG:
            logger.info("DEVELOPMENT OTP for %s: %s", email, otp)

        try:
            mailer.send_otp(email, otp)
        except Exception:
            logger.exception("Failed to send OTP email to %s", email)

        return Response({"message": "OTP sent to email", "email": email}, status=status.HTTP_201_CREATED)


class VerifyOTPView(APIView):
    def post(self, request):
        db = get_db()
        email = (request.data.get('email') or '').strip().lower()
        otp = request.data.get('otp')
        if not email or not otp:
            return Response({"error": "email and otp are required"}, status=400)

        user = db.users.find_one({"email": email})
        if not user:
            return Response({"error": "User not found"}, status=404)
        if user.get('isVerified'):
            return Response({"error": "User already verified"}, status=400)
        if str(user.get('otp')) != str(otp):
            return Response({"error": "Invalid OTP"}, status=400)
        expiry = as_utc(user.get('otpExpiry'))
        if expiry and expiry < now():
            return Response({"error": "OTP expired"}, status=400)

        db.users.update_one(
            {"_id": user['_id']},
            {"$set": {"isVerified": True}, "$unset": {"otp": "", "otpExpiry": ""}}
        )
        return Response({"message": "Email verified successfully"})


class LoginView(APIView):
    def post(self, request):
        db = get_db()
        email = (request.data.get('email') or '').strip().lower()
        password = request.data.get('password') or ''
        fcm_token = request.data.get('fcmToken')

        user = db.users.find_one({"email": email})
        if not user or not check_password(password, user.get('password', '')):
            return Response({"error": "Invalid credentials"}, status=status.HTTP_401_UNAUTHORIZED)
        if not user.get('isVerified'):
            return Response({"error": "Please verify your email first"}, status=status.HTTP_403_FORBIDDEN)

        update_data = {"lastLogin": now()}
        if fcm_token:
            update_data["fcmToken"] = fcm_token
        db.users.update_one({"_id": user['_id']}, {"$set": update_data})

        token = issue_token(user)
        response_data = serialize_doc(user)
        response_data['token'] = token
        response_data['success'] = True
        return Response(response_data)


# ---------------- Profile -----------------

class ProfileView(APIView):
    allowed_fields = [
        'name', 'phone', 'address', 'location', 'bloodGroup',
        'isAvailable', 'healthConditions', 'fcmToken',
    ]

    @authenticate_request
    def get(self, request):
        return Response(serialize_doc(dict(request.user_data)))

    @authenticate_request
    def put(self, request):
        db = get_db()
        data = request.data
        # Password, role, email, counters and bank linkage are never user-editable
        update_fields = {field: data[field] for field in self.allowed_fields if field in data}

        if update_fields.get('bloodGroup') and update_fields['bloodGroup'] not in BLOOD_GROUPS:
            return Response({"error": "Invalid blood group"}, status=400)

        user = request.user_data
        if update_fields:
            user = db.users.find_one_and_update(
                {"_id": user['_id']},
                {"$set": update_fields},
                return_document=ReturnDocument.AFTER
            )
        return Response(serialize_doc(user))


# ---------------- Blood Banks -----------------

def _validate_stock(stock):
    if not isinstance(stock, dict):
        raise ValidationError("stock must be an object")
    for group, units in stock.items():
        if group not in BLOOD_GROUPS:
            raise ValidationError(f"Unknown blood group: {group}")
        if isinstance(units, bool) or not isinstance(units, int) or units < 0:
            raise ValidationError(f"Stock for {group} must be a non-negative integer")


class BloodBankListView(APIView):
    def get(self, request):
        db = get_db()
        lat = request.query_params.get('lat')
        lng = request.query_params.get('lng')

        banks = [serialize_doc(b) for b in db.bloodbanks.find().sort("name", ASCENDING)]
        if lat and lng:
            banks = filter_near(banks, lat, lng, request.query_params.get('radius', 20000))
        return Response(banks)

    @authenticate_request
    @require_role('admin')
    def post(self, request):
        db = get_db()
        data = request.data

        for field in ('name', 'email', 'phone'):
            if not data.get(field):
                return Response({"error": f"{field} is required"}, status=400)
        if data.get('status') and data['status'] not in BANK_STATUSES:
            return Response({"error": "Invalid status"}, status=400)

        stock = empty_stock()
        if data.get('stock') is not None:
            _validate_stock(data['stock'])
            stock.update(data['stock'])

        bank = {
            "name": data['name'],
            "email": data['email'],
            "phone": data['phone'],
            "address": data.get('address') or {},
            "location": data.get('location') or {},
            "stock": stock,
            "admins": data.get('admins') or [],
            "status": data.get('status') or 'Active',
            "createdAt": now(),
        }
        res = db.bloodbanks.insert_one(bank)
        bank['_id'] = res.inserted_id
        return Response(serialize_doc(bank), status=status.HTTP_201_CREATED)


class BloodBankDetailView(APIView):
    editable_fields = ('name', 'email', 'phone', 'address', 'location', 'stock', 'admins', 'status')

    def _get_bank(self, db, bank_id):
        oid = to_object_id(bank_id)
        bank = db.bloodbanks.find_one({"_id": oid}) if oid else None
        if not bank:
            raise NotFound("Blood Bank not found")
        return bank

    def get(self, request, bank_id):
        return Response(serialize_doc(self._get_bank(get_db(), bank_id)))

    @authenticate_request
    def put(self, request, bank_id):
        db = get_db()
        bank = self._get_bank(db, bank_id)

        is_system_admin = request.user_role == 'admin'
        is_hospital_admin = request.user_role == 'hospital' and (
            request.user_id in [str(a) for a in bank.get('admins') or []]
            or str(bank['_id']) in linked_bank_ids(request.user_data)
        )
        if not is_system_admin and not is_hospital_admin:
            raise PermissionDenied("You don't have permission to update this blood bank")

        changes = {k: request.data[k] for k in self.editable_fields if k in request.data}
        if 'status' in changes and changes['status'] not in BANK_STATUSES:
            raise ValidationError("Invalid status")
        if 'stock' in changes:
            _validate_stock(changes.pop('stock'))
            for group, units in request.data['stock'].items():
                changes[f"stock.{group}"] = units

        if changes:
            bank = db.bloodbanks.find_one_and_update(
                {"_id": bank['_id']},
                {"$set": changes},
                return_document=ReturnDocument.AFTER
            )
        return Response(serialize_doc(bank))

    @authenticate_request
    @require_role('admin')
    def delete(self, request, bank_id):
        db = get_db()
        bank = self._get_bank(db, bank_id)
        db.bloodbanks.delete_one({"_id": bank['_id']})
        return Response({"message": "Blood Bank deleted successfully"})


# ---------------- Appointments -----------------

class AppointmentListView(APIView):
    @authenticate_request
    def get(self, request):
        db = get_db()

        if request.user_role == 'admin':
            query = {}
        elif request.user_role == 'hospital':
            ids = linked_bank_ids(request.user_data)
            if not ids:
                # Hospital account not linked to a blood bank yet
                return Response([])
            query = {"bloodBankId": {"$in": ids}}
        else:
            query = {"donorId": request.user_id}

        appointments = [serialize_doc(a) for a in db.appointments.find(query).sort("date", ASCENDING)]

        # Attach bank and donor summaries for dashboards
        bank_ids = {to_object_id(a.get('bloodBankId')) for a in appointments} - {None}
        donor_ids = {to_object_id(a.get('donorId')) for a in appointments} - {None}
        banks = {str(b['_id']): {"name": b.get('name'), "address": b.get('address')}
                 for b in db.bloodbanks.find({"_id": {"$in": list(bank_ids)}})}
        donors = {str(u['_id']): {"name": u.get('name'), "bloodGroup": u.get('bloodGroup'), "phone": u.get('phone')}
                  for u in db.users.find({"_id": {"$in": list(donor_ids)}})}
        for appt in appointments:
            appt['bloodBank'] = banks.get(appt.get('bloodBankId'))
            appt['donor'] = donors.get(appt.get('donorId'))

        return Response(appointments)

    @authenticate_request
    def post(self, request):
        db = get_db()
        data = request.data

        if not data.get('bloodBank') or not data.get('date') or not data.get('time'):
            return Response({"error": "Missing required fields"}, status=status.HTTP_400_BAD_REQUEST)

        appt = book_appointment(db, request.user_id, data['bloodBank'], data['date'], data['time'], data.get('notes'))
        return Response(appt, status=status.HTTP_201_CREATED)


class AppointmentDetailView(APIView):
    @authenticate_request
    def put(self, request, appointment_id):
        appt = update_appointment(get_db(), appointment_id, request.data, request.user_data)
        return Response(appt)


# ---------------- Blood Requests -----------------

class RequestListView(APIView):
    def get(self, request):
        db = get_db()
        params = request.query_params

        query = {}
        if params.get('userId'):
            query['requesterId'] = params['userId']
        for field in ('bloodGroup', 'urgency', 'status'):
            if params.get(field):
                query[field] = params[field]

        results = [serialize_doc(r) for r in db.requests.find(query).sort("createdAt", DESCENDING)]
        if params.get('lat') and params.get('lng'):
            results = filter_near(results, params['lat'], params['lng'], params.get('radius', 10000))
        return Response(results)

    @authenticate_request
    def post(self, request):
        db = get_db()
        data = request.data

        for field in ('patientName', 'bloodGroup', 'units'):
            if not data.get(field):
                return Response({"error": f"{field} is required"}, status=400)
        if data['bloodGroup'] not in BLOOD_GROUPS:
            return Response({"error": "Invalid blood group"}, status=400)
        if data.get('urgency') and data['urgency'] not in URGENCY_LEVELS:
            return Response({"error": "Invalid urgency"}, status=400)
        try:
            units = int(data['units'])
        except (TypeError, ValueError):
            return Response({"error": "units must be a number"}, status=400)

        new_req = {
            "requesterId": request.user_id,
            "patientName": data['patientName'],
            "bloodGroup": data['bloodGroup'],
            "units": units,
            "hospitalName": data.get('hospitalName'),
            "contactNumber": data.get('contactNumber'),
            "location": data.get('location') or {},
            "status": "pending",
            "urgency": data.get('urgency') or 'normal',
            "createdAt": now(),
        }
        res = db.requests.insert_one(new_req)
        new_req['_id'] = res.inserted_id
        return Response(serialize_doc(new_req), status=status.HTTP_201_CREATED)


class RequestDetailView(APIView):
    def get(self, request, request_id):
        db = get_db()
        oid = to_object_id(request_id)
        req = db.requests.find_one({"_id": oid}) if oid else None
        if not req:
            raise NotFound("Request not found")

        requester = db.users.find_one({"_id": to_object_id(req.get('requesterId'))},
                                      {"name": 1, "email": 1, "phone": 1})
        req = serialize_doc(req)
        req['requester'] = serialize_doc(requester)
        return Response(req)

    @authenticate_request
    def put(self, request, request_id):
        return Response(update_request(get_db(), request_id, request.data, request.user_data))

    @authenticate_request
    def delete(self, request, request_id):
        delete_request(get_db(), request_id, request.user_data)
        return Response({"message": "Request deleted successfully"})


# ---------------- Admin: users -----------------

class UserManagementView(APIView):
    @authenticate_request
    @require_role('admin')
    def get(self, request):
        db = get_db()
        query = {}
        if request.query_params.get('role'):
            query['role'] = request.query_params['role']
        users = [serialize_doc(u) for u in db.users.find(query).sort("createdAt", DESCENDING)]
        return Response(users)


class UserDetailView(APIView):
    @authenticate_request
    @require_role('admin')
    def put(self, request, user_id):
        db = get_db()
        data = request.data

        update_data = {}
        if data.get('hospitalId'):
            update_data['hospitalId'] = data['hospitalId']
            update_data['hospitalIds'] = [data['hospitalId']]
        if data.get('hospitalIds'):
            update_data['hospitalIds'] = list(data['hospitalIds'])
        if data.get('role'):
            if data['role'] not in ROLES:
                return Response({"error": "Invalid role"}, status=400)
            update_data['role'] = data['role']

        oid = to_object_id(user_id)
        user = db.users.find_one({"_id": oid}) if oid else None
        if user and update_data:
            user = db.users.find_one_and_update(
                {"_id": oid},
                {"$set": update_data},
                return_document=ReturnDocument.AFTER
            )
        if not user:
            raise NotFound("User not found")
        return Response(serialize_doc(user))

    @authenticate_request
    @require_role('admin')
    def delete(self, request, user_id):
        db = get_db()
        if user_id == request.user_id:
            return Response({"error": "Cannot delete yourself"}, status=400)

        oid = to_object_id(user_id)
        result = db.users.delete_one({"_id": oid}) if oid else None
        if not result or result.deleted_count == 0:
            raise NotFound("User not found")
        return Response({"message": "User deleted successfully"})
