"""
Follow-up scheduling for leads.

The schedule itself (date, type, notes) is persisted on the lead. Whether it
is overdue, and how urgent it is, is always derived at read time from the
schedule and the current clock.
"""
from datetime import datetime
from typing import Optional

from django.utils import timezone

# (days overdue strictly greater than, urgency)
URGENCY_TIERS = ((7, 'Critical'), (3, 'High'))
DEFAULT_URGENCY = 'Medium'


def schedule_from_interaction(interaction) -> Optional[dict]:
    """
    Lead field values for the follow-up an interaction declares.

    Returns None when the interaction does not carry both a next action and
    a scheduled time.
    """
    if not interaction.next_action or not interaction.scheduled_at:
        return None
    return {
        'next_follow_up_date': interaction.scheduled_at,
        'follow_up_type': interaction.type,
        'follow_up_notes': interaction.next_action,
    }


def is_overdue(next_follow_up_date: Optional[datetime], now: Optional[datetime] = None) -> bool:
    if next_follow_up_date is None:
        return False
    return (now or timezone.now()) > next_follow_up_date


def days_overdue(next_follow_up_date: Optional[datetime], now: Optional[datetime] = None) -> float:
    if not is_overdue(next_follow_up_date, now):
        return 0.0
    return ((now or timezone.now()) - next_follow_up_date).total_seconds() / 86400


def follow_up_urgency(next_follow_up_date: Optional[datetime], now: Optional[datetime] = None) -> Optional[str]:
    """Presentation tier for an overdue follow-up; None when nothing is overdue."""
    now = now or timezone.now()
    if not is_overdue(next_follow_up_date, now):
        return None
    overdue_by = days_overdue(next_follow_up_date, now)
    for threshold, urgency in URGENCY_TIERS:
        if overdue_by > threshold:
            return urgency
    return DEFAULT_URGENCY


def follow_up_view(lead, now: Optional[datetime] = None) -> dict:
    """Follow-up schedule of a lead with its overdue state computed for `now`."""
    now = now or timezone.now()
    next_date = lead.next_follow_up_date
    return {
        'nextFollowUpDate': next_date,
        'followUpType': lead.follow_up_type or None,
        'notes': lead.follow_up_notes or None,
        'isOverdue': is_overdue(next_date, now),
        'daysOverdue': round(days_overdue(next_date, now), 2),
        'urgency': follow_up_urgency(next_date, now),
    }
