"""
Score recalculation: the single writer of a lead's derived score fields.

`recalculate_score` reads the lead's current facts, applies the score policy
and writes the result back with a field-level update. It keeps no counters
and reads everything fresh, so running it twice, late, or out of order
leaves the lead in the same state as running it once.
"""
import logging
from datetime import datetime, timedelta
from typing import List, Optional

from django.conf import settings
from django.db import IntegrityError, transaction
from django.db.models import F, Q
from django.utils import timezone

from leads.models import Interaction, Lead, ScoreHistory
from leads.services.followup import is_overdue
from leads.services.scoring import (
    InteractionSummary,
    LeadSnapshot,
    ScorePolicy,
    ScoreResult,
    compute_score,
)

logger = logging.getLogger(__name__)


def build_interaction_summary(lead_id, as_of: datetime) -> InteractionSummary:
    """Summarise the lead's most recent interactions inside the lookback window."""
    since = as_of - timedelta(days=settings.LEAD_SCORE_LOOKBACK_DAYS)
    interactions = list(
        Interaction.objects
        .filter(lead_id=lead_id, created_at__gte=since)
        .order_by('-created_at')[:settings.LEAD_SCORE_INTERACTION_LIMIT]
    )
    return InteractionSummary.from_interactions(interactions, as_of)


def recalculate_score(lead_id, policy: Optional[ScorePolicy] = None,
                      now: Optional[datetime] = None) -> Optional[ScoreResult]:
    """
    Recompute and store the derived score state of one lead.

    Returns the ScoreResult written, or None when the lead does not exist
    (it may have been deleted after the job was queued).
    """
    now = now or timezone.now()
    try:
        lead = Lead.objects.get(pk=lead_id)
    except Lead.DoesNotExist:
        logger.info(f"Lead {lead_id} no longer exists, skipping score recalculation")
        return None

    summary = build_interaction_summary(lead.pk, now)
    snapshot = LeadSnapshot.from_lead(
        lead,
        as_of=now,
        follow_up_overdue=is_overdue(lead.next_follow_up_date, now)
    )
    result = compute_score(snapshot, summary, policy)

    # Only the derived fields; request-path edits to other fields survive
    updated = Lead.objects.filter(pk=lead.pk).update(
        score=result.score,
        score_grade=result.grade,
        priority=result.priority,
        confidence=result.confidence,
        score_breakdown=result.breakdown,
        last_score_update=now,
    )
    if not updated:
        logger.info(f"Lead {lead_id} was deleted during recalculation, nothing written")
        return None

    if _derived_state_changed(lead, result):
        _record_history(lead.pk, result)

    logger.info(
        f"Lead {lead_id} score {lead.score} -> {result.score} "
        f"(grade={result.grade}, priority={result.priority}, confidence={result.confidence})"
    )
    return result


def _derived_state_changed(lead: Lead, result: ScoreResult) -> bool:
    if lead.last_score_update is None:
        return True
    return (lead.score, lead.score_grade, lead.priority, lead.confidence) != (
        result.score, result.grade, result.priority, result.confidence
    )


def _record_history(lead_id, result: ScoreResult):
    try:
        with transaction.atomic():
            ScoreHistory.objects.create(
                lead_id=lead_id,
                score=result.score,
                score_grade=result.grade,
                priority=result.priority,
                confidence=result.confidence,
                breakdown=result.breakdown,
            )
    except IntegrityError:
        logger.info(f"Lead {lead_id} deleted before score history could be recorded")
        return

    stale_ids = list(
        ScoreHistory.objects
        .filter(lead_id=lead_id)
        .order_by('-recorded_at', '-id')
        .values_list('id', flat=True)[settings.LEAD_SCORE_HISTORY_LIMIT:]
    )
    if stale_ids:
        ScoreHistory.objects.filter(id__in=stale_ids).delete()


def needs_score_recalculation(lead: Lead, now: Optional[datetime] = None) -> bool:
    """
    True when the stored score is older than LEAD_STALE_SCORE_DAYS, was never
    computed, predates the lead's latest interaction, or was computed before
    a follow-up that is now overdue (its priority escalation is missing).
    """
    if lead.last_score_update is None:
        return True
    now = now or timezone.now()
    if now - lead.last_score_update > timedelta(days=settings.LEAD_STALE_SCORE_DAYS):
        return True
    if lead.last_interaction_date and lead.last_interaction_date > lead.last_score_update:
        return True
    return is_overdue(lead.next_follow_up_date, now) and lead.last_score_update <= lead.next_follow_up_date


def find_stale_lead_ids(limit: Optional[int] = None, now: Optional[datetime] = None, *,
                        organization_id: Optional[str] = None, project_id: Optional[str] = None,
                        assigned_to_id: Optional[int] = None,
                        min_days_old: Optional[int] = None) -> List[int]:
    """
    Open leads whose score is missing, older than `min_days_old` days
    (default LEAD_STALE_SCORE_DAYS) or computed before a follow-up that has
    since fallen due. Oldest score first, never-scored leads leading.
    """
    now = now or timezone.now()
    limit = limit or settings.LEAD_STALE_SCORE_BATCH
    if min_days_old is None:
        min_days_old = settings.LEAD_STALE_SCORE_DAYS
    cutoff = now - timedelta(days=min_days_old)

    leads = Lead.objects.exclude(status__in=Lead.CLOSED_STATUSES)
    if organization_id is not None:
        leads = leads.filter(organization_id=organization_id)
    if project_id is not None:
        leads = leads.filter(project_id=project_id)
    if assigned_to_id is not None:
        leads = leads.filter(assigned_to_id=assigned_to_id)
    return list(
        leads
        .filter(
            Q(last_score_update__isnull=True)
            | Q(last_score_update__lt=cutoff)
            | Q(next_follow_up_date__lt=now, last_score_update__lte=F('next_follow_up_date'))
        )
        .order_by(F('last_score_update').asc(nulls_first=True), 'id')
        .values_list('id', flat=True)[:limit]
    )
