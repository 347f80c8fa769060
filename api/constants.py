BLOOD_GROUPS = ['A+', 'A-', 'B+', 'B-', 'AB+', 'AB-', 'O+', 'O-']

ROLES = ['donor', 'recipient', 'admin', 'hospital']

REQUEST_REVIEW_STATUSES = ['approved', 'rejected', 'fulfilled']
URGENCY_LEVELS = ['normal', 'urgent', 'critical', 'emergency']

BANK_STATUSES = ['Active', 'Inactive', 'Out of Stock']
SOS_STATUSES = ['active', 'resolved', 'false_alarm']
VOLUNTEER_STATUSES = ['pending', 'approved', 'rejected']

FEEDBACK_EXPERIENCES = ['excellent', 'good', 'average', 'poor']
FEEDBACK_WAIT_TIMES = ['less_than_15', '15_to_30', '30_to_60', 'more_than_60']

# Points credited to a donor for each completed donation
DONATION_POINTS = 50

# Whole blood donation interval
DONATION_INTERVAL_DAYS = 56

def empty_stock():
    return {group: 0 for group in BLOOD_GROUPS}
