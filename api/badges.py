"""
Achievement badges.

Badges are re-derived from the donor's completed appointments every time
they are read. Each award is a point lookup followed by an insert; the unique
(userId, badgeType) index turns a concurrent duplicate into a no-op.
"""
import logging

from pymongo import DESCENDING
from pymongo.errors import DuplicateKeyError
from rest_framework.exceptions import ValidationError

from .db import as_utc, now, serialize_doc, to_object_id

logger = logging.getLogger(__name__)

BADGE_INFO = {
    'first_donation': {'name': 'First Drop', 'description': 'Completed your first blood donation', 'icon': '🩸', 'points': 100},
    'five_donations': {'name': 'Regular Donor', 'description': 'Donated blood 5 times', 'icon': '⭐', 'points': 250},
    'ten_donations': {'name': 'Dedicated Donor', 'description': 'Donated blood 10 times', 'icon': '🌟', 'points': 500},
    'twenty_five_donations': {'name': 'Silver Heart', 'description': 'Donated blood 25 times', 'icon': '🥈', 'points': 1000},
    'fifty_donations': {'name': 'Golden Heart', 'description': 'Donated blood 50 times', 'icon': '🥇', 'points': 2500},
    'hundred_donations': {'name': 'Platinum Legend', 'description': 'Donated blood 100 times', 'icon': '💎', 'points': 5000},
    'rare_blood_hero': {'name': 'Rare Blood Hero', 'description': 'Donated rare blood type (AB-, B-, O-)', 'icon': '🦸', 'points': 300},
    'emergency_responder': {'name': 'Emergency Responder', 'description': 'Responded to an emergency blood request', 'icon': '🚨', 'points': 400},
    'streak_3_months': {'name': '3 Month Streak', 'description': 'Donated every 3 months for a year', 'icon': '🔥', 'points': 600},
    'streak_6_months': {'name': '6 Month Streak', 'description': 'Maintained regular donations for 6 months', 'icon': '💪', 'points': 400},
    'streak_1_year': {'name': 'Year of Giving', 'description': 'Active donor for 1 full year', 'icon': '🏆', 'points': 1000},
    'camp_organizer': {'name': 'Camp Organizer', 'description': 'Organized a blood donation camp', 'icon': '🎪', 'points': 500},
    'referral_champion': {'name': 'Referral Champion', 'description': 'Referred 5 new donors', 'icon': '👥', 'points': 350},
    'life_saver': {'name': 'Life Saver', 'description': 'Your blood directly saved a life', 'icon': '❤️', 'points': 500},
    'plasma_donor': {'name': 'Plasma Pioneer', 'description': 'Donated plasma', 'icon': '💛', 'points': 300},
    'platelet_donor': {'name': 'Platelet Pro', 'description': 'Donated platelets', 'icon': '🧬', 'points': 300},
    'weekend_warrior': {'name': 'Weekend Warrior', 'description': 'Donated on weekends 5 times', 'icon': '🌅', 'points': 200},
    'early_bird': {'name': 'Early Bird', 'description': 'Donated before 9 AM 3 times', 'icon': '🐦', 'points': 150},
    'community_leader': {'name': 'Community Leader', 'description': 'Top donor in your city', 'icon': '👑', 'points': 1000},
}

DONATION_COUNT_BADGES = [
    (1, 'first_donation'),
    (5, 'five_donations'),
    (10, 'ten_donations'),
    (25, 'twenty_five_donations'),
    (50, 'fifty_donations'),
    (100, 'hundred_donations'),
]

RARE_BLOOD_GROUPS = ('AB-', 'B-', 'O-')
WEEKEND_WARRIOR_DONATIONS = 5


def _award(db, user_id, badge_type, metadata=None):
    """Insert the badge unless the user already holds it. True when newly awarded."""
    if db.badges.find_one({"userId": user_id, "badgeType": badge_type}):
        return False
    try:
        db.badges.insert_one({
            "userId": user_id,
            "badgeType": badge_type,
            "earnedAt": now(),
            "metadata": metadata or {},
        })
    except DuplicateKeyError:
        # Lost a race with a concurrent evaluation
        return False
    return True


def _weekend_donations(db, user_id):
    completed = db.appointments.find({"donorId": user_id, "status": "completed"}, {"date": 1})
    count = 0
    for appt in completed:
        date = appt.get('date')
        if date is not None and hasattr(date, 'weekday') and as_utc(date).weekday() >= 5:
            count += 1
    return count


def evaluate_badges(db, user_id):
    """Award every badge the user now qualifies for; returns the newly awarded types."""
    user_id = str(user_id)
    oid = to_object_id(user_id)
    user = db.users.find_one({"_id": oid}) if oid else None
    if not user:
        return []

    completed = db.appointments.count_documents({"donorId": user_id, "status": "completed"})
    new_badges = []

    for threshold, badge_type in DONATION_COUNT_BADGES:
        if completed >= threshold and _award(db, user_id, badge_type):
            new_badges.append(badge_type)

    if user.get('bloodGroup') in RARE_BLOOD_GROUPS and completed >= 1:
        if _award(db, user_id, 'rare_blood_hero'):
            new_badges.append('rare_blood_hero')

    if _weekend_donations(db, user_id) >= WEEKEND_WARRIOR_DONATIONS:
        if _award(db, user_id, 'weekend_warrior'):
            new_badges.append('weekend_warrior')

    if new_badges:
        logger.info("Awarded %s to user %s", ", ".join(new_badges), user_id)
    return new_badges


def badge_summary(db, user_id):
    user_id = str(user_id)
    new_badges = evaluate_badges(db, user_id)

    earned = []
    for badge in db.badges.find({"userId": user_id}).sort("earnedAt", DESCENDING):
        badge = serialize_doc(badge)
        badge['info'] = BADGE_INFO.get(badge['badgeType'])
        earned.append(badge)

    earned_at = {b['badgeType']: b.get('earnedAt') for b in earned}
    all_badges = [
        dict(info, type=badge_type, earned=badge_type in earned_at, earnedAt=earned_at.get(badge_type))
        for badge_type, info in BADGE_INFO.items()
    ]

    return {
        "badges": earned,
        "allBadges": all_badges,
        "totalPoints": sum((b['info'] or {}).get('points', 0) for b in earned),
        "newBadges": [dict(BADGE_INFO[t], type=t) for t in new_badges],
    }


def award_badge(db, user_id, badge_type):
    if badge_type not in BADGE_INFO:
        raise ValidationError("Invalid badge type")
    if not user_id:
        raise ValidationError("userId is required")
    if not _award(db, str(user_id), badge_type, {"awardedManually": True}):
        raise ValidationError("Badge already awarded")
    badge = serialize_doc(db.badges.find_one({"userId": str(user_id), "badgeType": badge_type}))
    badge['info'] = BADGE_INFO[badge_type]
    return badge
