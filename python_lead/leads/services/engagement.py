"""
Engagement metrics accumulator and interaction ingestion.

Recording an interaction updates the lead's engagement counters and
follow-up schedule in the same transaction, then queues a score
recalculation once that transaction (and any outer one) commits, so the
job always sees the new counters. A follow-up scheduled in the future gets
a second job timed for just after it falls due.
"""
import logging
from datetime import timedelta
from typing import Iterable, Optional, Tuple

from django.conf import settings
from django.db import transaction
from django.db.models import F
from django.utils import timezone

from leads.models import Interaction, Lead
from leads.services.followup import schedule_from_interaction
from leads.services.queue import delay_for, enqueue_score_recalculation

logger = logging.getLogger(__name__)

TREND_WINDOW_DAYS = 30


class InvalidInteractionError(ValueError):
    """Raised when an interaction payload cannot be recorded."""
    pass


def response_metrics(interactions: Iterable, window_hours: int) -> Tuple[float, Optional[float]]:
    """
    Share of outbound interactions answered by an inbound one within
    `window_hours`, and the mean response time in hours.

    Returns (0.0, None) when there is no outbound interaction.
    """
    window = timedelta(hours=window_hours)
    ordered = sorted((i for i in interactions if i.created_at), key=lambda i: i.created_at)
    outbound = 0
    response_hours = []
    for index, interaction in enumerate(ordered):
        if interaction.direction != Interaction.Direction.OUTBOUND:
            continue
        outbound += 1
        for later in ordered[index + 1:]:
            elapsed = later.created_at - interaction.created_at
            if elapsed > window:
                break
            if later.direction == Interaction.Direction.INBOUND:
                response_hours.append(elapsed.total_seconds() / 3600)
                break
    if not outbound:
        return 0.0, None
    rate = round(len(response_hours) / outbound, 4)
    average = round(sum(response_hours) / len(response_hours), 2) if response_hours else None
    return rate, average


def engagement_trend(recent: int, previous: int) -> str:
    """Compare interaction counts of the last window with the one before it."""
    if recent == 0 and previous == 0:
        return Lead.EngagementTrend.NO_DATA
    if recent > previous:
        return Lead.EngagementTrend.INCREASING
    if recent == previous:
        return Lead.EngagementTrend.STABLE
    return Lead.EngagementTrend.DECREASING


def _engagement_fields(lead_id, interaction: Interaction) -> dict:
    now = interaction.created_at or timezone.now()
    sample = list(
        Interaction.objects
        .filter(lead_id=lead_id)
        .order_by('-created_at')[:settings.LEAD_ENGAGEMENT_SAMPLE_SIZE]
    )
    rate, average = response_metrics(sample, settings.LEAD_RESPONSE_WINDOW_HOURS)

    log = Interaction.objects.filter(lead_id=lead_id)
    recent_start = now - timedelta(days=TREND_WINDOW_DAYS)
    previous_start = recent_start - timedelta(days=TREND_WINDOW_DAYS)
    recent = log.filter(created_at__gte=recent_start).count()
    previous = log.filter(created_at__gte=previous_start, created_at__lt=recent_start).count()

    return {
        'last_interaction_date': interaction.created_at,
        'last_interaction_type': interaction.type,
        'response_rate': rate,
        'avg_response_hours': average,
        'engagement_trend': engagement_trend(recent, previous),
    }


def record_interaction(lead: Lead, user=None, *, type, content, direction='', outcome='',
                       next_action='', scheduled_at=None) -> Interaction:
    """
    Record an interaction with a lead.

    Steps, in one transaction:
    1. Create the immutable Interaction
    2. Increment total_interactions, refresh response rate and trend
    3. Apply the follow-up schedule the interaction declares, if any

    After commit, queue a score recalculation for the lead, and another for
    the moment a future follow-up becomes overdue.

    Raises:
        InvalidInteractionError: unknown type or direction, or empty content
    """
    if type not in Interaction.Type.values:
        raise InvalidInteractionError(f"Unknown interaction type: {type!r}")
    if not content or not str(content).strip():
        raise InvalidInteractionError("Interaction content is required")
    if direction and direction not in Interaction.Direction.values:
        raise InvalidInteractionError(f"Unknown interaction direction: {direction!r}")

    with transaction.atomic():
        interaction = Interaction.objects.create(
            lead=lead,
            organization_id=lead.organization_id,
            user=user,
            type=type,
            direction=direction or '',
            content=str(content).strip(),
            outcome=outcome or '',
            next_action=next_action or '',
            scheduled_at=scheduled_at,
        )
        fields = _engagement_fields(lead.pk, interaction)
        schedule = schedule_from_interaction(interaction)
        if schedule:
            fields.update(schedule)
        Lead.objects.filter(pk=lead.pk).update(
            total_interactions=F('total_interactions') + 1,
            **fields
        )

    logger.info(
        f"Interaction {interaction.id} ({interaction.type}) recorded for lead {lead.pk}"
        + (f", follow-up due {interaction.scheduled_at.isoformat()}" if schedule else "")
    )
    transaction.on_commit(lambda: _queue_rescores(lead.pk, interaction.scheduled_at if schedule else None))
    return interaction


def _queue_rescores(lead_id, follow_up_due=None):
    enqueue_score_recalculation(lead_id, delay_for('interaction'))
    if follow_up_due is None:
        return
    until_due = follow_up_due - timezone.now()
    if until_due > timedelta(0):
        # Overdue escalation only shows up once the job runs after the due time
        enqueue_score_recalculation(
            lead_id,
            until_due.total_seconds() * 1000 + delay_for('follow_up_margin')
        )
