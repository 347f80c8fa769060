import logging

from django.conf import settings
from django.core.mail import send_mail
from django.utils.html import escape, strip_tags

from .constants import DONATION_INTERVAL_DAYS

logger = logging.getLogger(__name__)

BRAND = "Jeevan Blood Donation"


def email_configured():
    if settings.EMAIL_BACKEND.endswith('smtp.EmailBackend'):
        return bool(settings.EMAIL_HOST_USER and settings.EMAIL_HOST_PASSWORD)
    return True


def send_html_email(to, subject, html):
    """
    Send one HTML email. Returns False when SMTP credentials are missing and
    the mail was only logged. Delivery errors propagate to the caller.
    """
    if not email_configured():
        logger.warning("SMTP credentials not found. Email to %s not sent (%s)", to, subject)
        return False

    send_mail(
        subject=subject,
        message=strip_tags(html),
        from_email=settings.DEFAULT_FROM_EMAIL,
        recipient_list=[to],
        html_message=html,
        fail_silently=False,
    )
    logger.info("Email sent to %s: %s", to, subject)
    return True


def _wrap(body):
    return f'<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">{body}</div>'


def _fmt_date(value):
    if hasattr(value, 'strftime'):
        return value.strftime('%d %b %Y')
    return escape(str(value or ''))


def bank_address(bank):
    address = (bank or {}).get('address') or {}
    if isinstance(address, str):
        return address
    parts = [address.get('street'), address.get('city'), address.get('state'), address.get('zip')]
    return ", ".join(p for p in parts if p)


def bank_map_link(bank):
    location = (bank or {}).get('location') or {}
    if location.get('lat') is None or location.get('lng') is None:
        return '#'
    return f"https://www.google.com/maps/search/?api=1&query={location['lat']},{location['lng']}"


def send_appointment_confirmation(donor, appointment, bank):
    subject = f"Appointment Confirmed - {BRAND}"
    html = _wrap(f"""
      <h2 style="color: #dc2626;">Appointment Confirmed</h2>
      <p>Dear {escape(donor.get('name', 'Donor'))},</p>
      <p>Your blood donation appointment has been confirmed.</p>
      <div style="background-color: #f3f4f6; padding: 20px; border-radius: 8px; margin: 20px 0;">
        <p><strong>Date:</strong> {_fmt_date(appointment.get('date'))}</p>
        <p><strong>Blood Bank:</strong> {escape(bank.get('name', ''))}</p>
        <p><strong>Address:</strong> {escape(bank_address(bank))}</p>
        <p><strong>Location:</strong> <a href="{bank_map_link(bank)}">View on Map</a></p>
      </div>
      <p>Please arrive 10 minutes early. Stay hydrated and eat a light meal before donating.</p>
      <p>Thank you for saving lives!</p>
      <p>Team Jeevan</p>
    """)
    return send_html_email(donor['email'], subject, html)


def send_appointment_cancellation(donor, appointment, bank, reason=None):
    subject = f"Appointment Update - {BRAND}"
    reason_html = f"<p><strong>Reason:</strong> {escape(reason)}</p>" if reason else ""
    html = _wrap(f"""
      <h2 style="color: #dc2626;">Appointment Update</h2>
      <p>Dear {escape(donor.get('name', 'Donor'))},</p>
      <p>Your appointment scheduled for {_fmt_date(appointment.get('date'))} at
         {escape(bank.get('name', 'the blood bank'))} has been cancelled.</p>
      {reason_html}
      <p>Please feel free to schedule another appointment at a different time or location.</p>
      <p>Team Jeevan</p>
    """)
    return send_html_email(donor['email'], subject, html)


def send_donation_appreciation(donor, appointment, bank):
    subject = f"Thank You for Saving Lives! - {BRAND}"
    count = donor.get('donationCount') or 1
    html = _wrap(f"""
      <h2 style="color: #dc2626;">Thank You, {escape(donor.get('name', 'Donor'))}!</h2>
      <p>Your donation of <strong>{escape(donor.get('bloodGroup') or 'Unknown')}</strong> blood at
         {escape(bank.get('name', 'the blood bank'))} on {_fmt_date(appointment.get('date'))} is complete.</p>
      <p>This was donation number <strong>{count}</strong>. One donation can save up to three lives.</p>
      <p>You will be eligible to donate again in {DONATION_INTERVAL_DAYS} days.</p>
      <p>Team Jeevan</p>
    """)
    return send_html_email(donor['email'], subject, html)


def send_request_rejection(requester, blood_request):
    subject = f"Blood Request Update - {BRAND}"
    html = _wrap(f"""
      <h2 style="color: #dc2626;">Blood Request Update</h2>
      <p>Dear {escape(requester.get('name', 'User'))},</p>
      <p>Your request for {escape(str(blood_request.get('units', '')))} unit(s) of
         {escape(blood_request.get('bloodGroup') or '')} for {escape(blood_request.get('patientName') or 'the patient')}
         could not be approved.</p>
      <p>Please contact your nearest blood bank or raise a new request.</p>
      <p>Team Jeevan</p>
    """)
    return send_html_email(requester['email'], subject, html)


def send_disaster_alert(donor, alert):
    subject = f"URGENT: {alert.get('title')}"
    html = _wrap(f"""
      <div style="background: #dc2626; padding: 20px; text-align: center;">
        <h1 style="color: white; margin: 0;">Emergency Blood Alert</h1>
      </div>
      <div style="padding: 20px; background: #fff;">
        <h2 style="color: #dc2626;">{escape(alert.get('title') or '')}</h2>
        <p style="color: #374151; font-size: 16px;">{escape(alert.get('description') or '')}</p>
        <p style="color: #6b7280;"><strong>Location:</strong> {escape(alert.get('location') or '')}</p>
        <p style="color: #6b7280;"><strong>Your Blood Type ({escape(donor.get('bloodGroup') or '')}) is urgently needed!</strong></p>
        <p style="text-align: center; margin: 30px 0;">
          <a href="{settings.FRONTEND_URL}/donate"
             style="background: #dc2626; color: white; padding: 15px 30px; text-decoration: none; border-radius: 8px;">
            Respond to Emergency
          </a>
        </p>
        <p style="color: #9ca3af; font-size: 12px;">Thank you for being a lifesaver, {escape(donor.get('name', ''))}!</p>
      </div>
    """)
    return send_html_email(donor['email'], subject, html)


def send_feedback_notification(admin_email, donor, bank_name, feedback):
    subject = f"New Donor Feedback Received - {feedback.get('rating')}/5 Stars"
    rows = "".join(
        f"<tr><td><strong>{label}</strong></td><td>{escape(str(feedback.get(key, '')))}</td></tr>"
        for label, key in (
            ("Rating", 'rating'), ("Experience", 'experience'), ("Staff Behavior", 'staffBehavior'),
            ("Cleanliness", 'cleanliness'), ("Wait Time", 'waitTime'), ("Would Recommend", 'wouldRecommend'),
            ("Comments", 'comments'), ("Suggestions", 'suggestions'),
        )
    )
    html = _wrap(f"""
      <h2 style="color: #dc2626;">New Donor Feedback</h2>
      <p><strong>Donor:</strong> {escape(donor.get('name', 'Anonymous Donor'))} ({escape(donor.get('email', 'No email'))})</p>
      <p><strong>Blood Bank:</strong> {escape(bank_name)}</p>
      <table>{rows}</table>
    """)
    return send_html_email(admin_email, subject, html)


def send_volunteer_application(inbox, volunteer):
    subject = f"New Volunteer Application: {volunteer.get('name')}"
    html = _wrap(f"""
      <h2>New Volunteer Application</h2>
      <p><strong>Name:</strong> {escape(volunteer.get('name', ''))}</p>
      <p><strong>Email:</strong> {escape(volunteer.get('email', ''))}</p>
      <p><strong>Phone:</strong> {escape(volunteer.get('phone', ''))}</p>
      <p><strong>Address:</strong> {escape(volunteer.get('address', ''))}</p>
      <p><strong>Reason for Joining:</strong></p>
      <p>{escape(volunteer.get('reason', ''))}</p>
    """)
    return send_html_email(inbox, subject, html)


def send_volunteer_decision(volunteer, decision):
    name = escape(volunteer.get('name', ''))
    if decision == 'approved':
        subject = f"Volunteer Application Approved - {BRAND}"
        body = f"""
          <h2>Congratulations {name}!</h2>
          <p>Your application to join Jeevan Blood Donation as a volunteer has been <strong>APPROVED</strong>.</p>
          <p>Our team will contact you shortly with further details.</p>
        """
    else:
        subject = f"Update on your Volunteer Application - {BRAND}"
        body = f"""
          <h2>Hello {name},</h2>
          <p>Thank you for your interest in volunteering with Jeevan Blood Donation.</p>
          <p>We are unable to move forward with your application at this time.</p>
        """
    return send_html_email(volunteer['email'], subject, _wrap(body + "<p>The Jeevan Team</p>"))


def send_otp(email, otp):
    subject = "Verify your email - Blood Donation System"
    html = _wrap(f"""
      <h1>Email Verification</h1>
      <p>Your OTP for registration is: <strong>{otp}</strong></p>
      <p>This OTP is valid for {settings.OTP_EXPIRY_MINUTES} minutes.</p>
    """)
    return send_html_email(email, subject, html)


def send_money_donation_thanks(email, amount, payment_id):
    subject = f"Thank You for Your Donation - {BRAND}"
    html = _wrap(f"""
      <h2 style="color: #dc2626;">Thank You for Your Support!</h2>
      <p>We have successfully received your donation of <strong>&#8377;{escape(str(amount))}</strong>.</p>
      <p><strong>Transaction ID:</strong> {escape(str(payment_id))}</p>
      <p>Your contribution helps us organize more blood donation camps and save more lives.</p>
      <p>Team Jeevan</p>
    """)
    return send_html_email(email, subject, html)
