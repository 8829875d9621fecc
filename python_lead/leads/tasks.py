"""
Celery tasks for background lead scoring.
"""
import logging
from celery import shared_task
from django.db import InterfaceError, OperationalError

from leads.services.queue import enqueue_score_recalculation, jittered_delay_ms
from leads.services.recalculation import find_stale_lead_ids, recalculate_score

logger = logging.getLogger(__name__)

TRANSIENT_STORE_ERRORS = (OperationalError, InterfaceError)


@shared_task(
    bind=True,
    autoretry_for=TRANSIENT_STORE_ERRORS,
    retry_backoff=2,  # Exponential backoff starting at 2s
    retry_backoff_max=30,
    max_retries=3,
    retry_jitter=False,
    acks_late=True,  # Redeliver if the worker dies mid-job
    soft_time_limit=20,
    time_limit=30,
)
def recalculate_lead_score(self, lead_id):
    """
    Recompute the derived score state of one lead.

    Workflow:
    1. Load the lead (missing lead: nothing to do)
    2. Summarise recent interactions
    3. Apply the score policy
    4. Field-level write of score, grade, priority, confidence

    Transient database errors are retried with backoff. Once the retry
    budget is spent the job is dropped: the score stays stale until the next
    trigger or the periodic reconciliation, rather than looping.

    Args:
        lead_id: ID of the Lead to rescore
    """
    try:
        result = recalculate_score(lead_id)
    except TRANSIENT_STORE_ERRORS as e:
        if self.request.retries >= self.max_retries:
            logger.error(
                f"Lead {lead_id} score recalculation dropped: "
                f"max retries ({self.max_retries}) exhausted: {e}"
            )
            return None
        logger.warning(
            f"Lead {lead_id} score recalculation failed: {e}, "
            f"will retry (attempt {self.request.retries + 1}/{self.max_retries + 1})"
        )
        # Re-raise to let Celery handle retry logic
        raise

    if result is None:
        return None
    return {
        'lead_id': lead_id,
        'score': result.score,
        'grade': result.grade,
        'priority': result.priority,
        'confidence': result.confidence,
    }


@shared_task
def reconcile_stale_scores(limit=None):
    """
    Queue recalculation for open leads whose score is missing or stale.

    Catches up on jobs lost to queue outages. Delays are jittered to spread
    the load on the database.
    """
    lead_ids = find_stale_lead_ids(limit=limit)
    for lead_id in lead_ids:
        enqueue_score_recalculation(lead_id, jittered_delay_ms())
    if lead_ids:
        logger.info(f"Queued score reconciliation for {len(lead_ids)} stale leads")
    return len(lead_ids)
