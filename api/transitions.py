"""
Status changes for appointments and blood requests.

Statuses are plain strings written straight to the document; there is no
transition table. What is enforced is who may write: donors may only cancel
their own appointments, hospitals act on appointments at the banks they
manage, and only hospitals/admins review requests.

Completing an appointment credits the bank's stock and the donor's stats.
These are two separate writes with no transaction around them.
"""
import logging

from pymongo import ReturnDocument
from rest_framework.exceptions import NotFound, PermissionDenied

from . import mailer
from .auth_utils import linked_bank_ids
from .constants import DONATION_POINTS, REQUEST_REVIEW_STATUSES
from .db import now, serialize_doc, to_object_id

logger = logging.getLogger(__name__)

APPOINTMENT_FIELDS = ('status', 'trackingStatus', 'healthStats')
REQUEST_FIELDS = (
    'patientName', 'bloodGroup', 'units', 'hospitalName', 'contactNumber',
    'location', 'status', 'urgency', 'fulfilledBy',
)


def _check_appointment_access(appt, changes, caller):
    role = caller.get('role')
    if role == 'admin':
        return
    if role == 'donor':
        if appt.get('donorId') != str(caller['_id']):
            raise PermissionDenied("Forbidden")
        if changes.get('status') != 'cancelled' or set(changes) - {'status'}:
            raise PermissionDenied("Donors can only cancel their own appointments")
        return
    if role == 'hospital':
        if appt.get('bloodBankId') not in linked_bank_ids(caller):
            raise PermissionDenied("Appointment is not at one of your blood banks")
        return
    raise PermissionDenied("Forbidden")


def record_donation(db, appt):
    """Credit bank stock and donor stats for a completed donation."""
    donor = db.users.find_one({"_id": to_object_id(appt.get('donorId'))})
    if not donor or not donor.get('bloodGroup'):
        logger.warning("Appointment %s completed without a donor blood group; stock not updated", appt['_id'])
        return

    bank_oid = to_object_id(appt.get('bloodBankId'))
    if bank_oid is not None:
        db.bloodbanks.update_one(
            {"_id": bank_oid},
            {"$inc": {f"stock.{donor['bloodGroup']}": 1}}
        )

    db.users.update_one(
        {"_id": donor['_id']},
        {
            "$set": {"lastDonationDate": now()},
            "$inc": {"donationCount": 1, "points": DONATION_POINTS},
        }
    )


def _notify_appointment_change(db, appt, new_status):
    donor = db.users.find_one({"_id": to_object_id(appt.get('donorId'))})
    if not donor or not donor.get('email'):
        return
    bank = db.bloodbanks.find_one({"_id": to_object_id(appt.get('bloodBankId'))}) or {}

    try:
        if new_status == 'confirmed':
            mailer.send_appointment_confirmation(donor, appt, bank)
        elif new_status in ('cancelled', 'rejected'):
            mailer.send_appointment_cancellation(donor, appt, bank, appt.get('cancelReason'))
        elif new_status == 'completed':
            mailer.send_donation_appreciation(donor, appt, bank)
    except Exception:
        # Status is already saved
        logger.exception("Failed to send %s notification for appointment %s", new_status, appt['_id'])


def update_appointment(db, appointment_id, data, caller):
    """
    Apply status / trackingStatus / healthStats changes to an appointment.

    caller is the authenticated user document. Returns the updated,
    serialized appointment.
    """
    oid = to_object_id(appointment_id)
    appt = db.appointments.find_one({"_id": oid}) if oid else None
    if not appt:
        raise NotFound("Appointment not found")

    changes = {k: data[k] for k in APPOINTMENT_FIELDS if data.get(k)}
    _check_appointment_access(appt, changes, caller)

    new_status = changes.get('status')
    if new_status == 'completed' and appt.get('status') != 'completed':
        record_donation(db, appt)

    if data.get('reason') and new_status in ('cancelled', 'rejected'):
        changes['cancelReason'] = data['reason']

    if changes:
        changes['updatedAt'] = now()
        appt = db.appointments.find_one_and_update(
            {"_id": oid},
            {"$set": changes},
            return_document=ReturnDocument.AFTER
        )

    if new_status:
        _notify_appointment_change(db, appt, new_status)

    return serialize_doc(appt)


def update_request(db, request_id, data, caller):
    """Edit a blood request; moving it to approved/rejected/fulfilled needs a hospital or admin."""
    new_status = data.get('status')
    if new_status in REQUEST_REVIEW_STATUSES and caller.get('role') not in ('admin', 'hospital'):
        raise PermissionDenied("Only administrators or hospitals can change request status")

    oid = to_object_id(request_id)
    existing = db.requests.find_one({"_id": oid}) if oid else None
    if not existing:
        raise NotFound("Request not found")

    changes = {k: data[k] for k in REQUEST_FIELDS if k in data}
    if not changes:
        return serialize_doc(existing)

    changes['updatedAt'] = now()
    updated = db.requests.find_one_and_update(
        {"_id": oid},
        {"$set": changes},
        return_document=ReturnDocument.AFTER
    )

    if new_status == 'rejected' and existing.get('status') != 'rejected':
        requester = db.users.find_one({"_id": to_object_id(updated.get('requesterId'))})
        if requester and requester.get('email'):
            try:
                mailer.send_request_rejection(requester, updated)
            except Exception:
                logger.exception("Failed to send rejection email for request %s", request_id)

    return serialize_doc(updated)


def delete_request(db, request_id, caller):
    oid = to_object_id(request_id)
    existing = db.requests.find_one({"_id": oid}) if oid else None
    if not existing:
        raise NotFound("Request not found")
    if existing.get('requesterId') != str(caller['_id']) and caller.get('role') != 'admin':
        raise PermissionDenied("Forbidden")
    db.requests.delete_one({"_id": oid})
