"""
Read-side queries over scored leads.

Follow-up overdue state and urgency are never read from storage; every
function here derives them from the stored schedule and the current clock.
"""
from datetime import datetime, timedelta
from typing import List, Optional

from django.db.models import Q
from django.utils import timezone

from leads.models import Lead, ScoreHistory
from leads.services.followup import days_overdue, follow_up_urgency, follow_up_view
from leads.services.recalculation import needs_score_recalculation
from leads.services.scoring import PRIORITY_TIERS, priority_rank

ATTENTION_SILENCE_DAYS = 3
ATTENTION_SCORE_BELOW = 40


def get_lead(organization_id: str, lead_id) -> Lead:
    """Lead `lead_id` scoped to the organization; raises Lead.DoesNotExist."""
    return Lead.objects.select_related('assigned_to').get(pk=lead_id, organization_id=organization_id)


def open_leads(organization_id: str):
    return Lead.objects.filter(organization_id=organization_id).exclude(status__in=Lead.CLOSED_STATUSES)


def get_score_breakdown(organization_id: str, lead_id, now: Optional[datetime] = None) -> dict:
    """Stored score state of a lead, its engagement metrics and live follow-up view."""
    now = now or timezone.now()
    lead = get_lead(organization_id, lead_id)
    return {
        'leadId': lead.id,
        'name': lead.full_name,
        'score': lead.score,
        'grade': lead.score_grade,
        'priority': lead.priority,
        'confidence': lead.confidence,
        'breakdown': lead.score_breakdown,
        'lastScoreUpdate': lead.last_score_update,
        'needsRecalculation': needs_score_recalculation(lead, now),
        'engagementMetrics': lead.engagement_metrics,
        'followUp': follow_up_view(lead, now),
    }


def list_leads_above_priority(organization_id: str, threshold: str = Lead.Priority.HIGH,
                              limit: int = 50) -> List[Lead]:
    """Open leads whose priority is at or above `threshold`, highest score first."""
    try:
        rank = priority_rank(threshold)
    except ValueError:
        raise ValueError(f"Unknown priority: {threshold!r}") from None
    return list(
        open_leads(organization_id)
        .filter(priority__in=PRIORITY_TIERS[rank:])
        .select_related('assigned_to')
        .order_by('-score', 'id')[:limit]
    )


def list_overdue_follow_ups(organization_id: str, now: Optional[datetime] = None,
                            limit: int = 50) -> List[dict]:
    """Open leads with a follow-up in the past, most overdue first, with urgency."""
    now = now or timezone.now()
    leads = (
        open_leads(organization_id)
        .filter(next_follow_up_date__lt=now)
        .select_related('assigned_to')
        .order_by('next_follow_up_date', 'id')[:limit]
    )
    return [
        {
            'lead': lead,
            'daysOverdue': round(days_overdue(lead.next_follow_up_date, now), 2),
            'urgency': follow_up_urgency(lead.next_follow_up_date, now),
        }
        for lead in leads
    ]


def list_leads_needing_attention(organization_id: str, now: Optional[datetime] = None,
                                 limit: int = 50) -> List[Lead]:
    """
    Open leads that are going cold: no interaction for a few days, an
    overdue follow-up, or a low score.
    """
    now = now or timezone.now()
    silence_cutoff = now - timedelta(days=ATTENTION_SILENCE_DAYS)
    return list(
        open_leads(organization_id)
        .filter(
            Q(last_interaction_date__lt=silence_cutoff)
            | Q(last_interaction_date__isnull=True, created_at__lt=silence_cutoff)
            | Q(next_follow_up_date__lt=now)
            | Q(score__lt=ATTENTION_SCORE_BELOW)
        )
        .select_related('assigned_to')
        .order_by('-score', 'id')[:limit]
    )


def get_score_history(organization_id: str, lead_id, limit: int = 20) -> List[ScoreHistory]:
    """Most recent score changes of a lead, newest first."""
    lead = get_lead(organization_id, lead_id)
    return list(lead.score_history.order_by('-recorded_at', '-id')[:limit])
