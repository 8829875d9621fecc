"""
Score recalculation job queue.

Callers depend only on `enqueue_score_recalculation`; which backend sits
behind it is chosen by the LEAD_SCORE_QUEUE_BACKEND setting:

- CeleryScoreQueue: Celery task with a countdown (production)
- InMemoryScoreQueue: in-process delay queue the test suite drains itself
- LoggingScoreQueue: drops jobs after logging them (no background worker)

Enqueueing never raises. Scoring is an eventually consistent side effect,
so a broker outage must not fail the mutation that triggered it.
"""
import heapq
import itertools
import logging
import random
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from functools import lru_cache
from typing import List, Optional

from django.conf import settings
from django.core.exceptions import ImproperlyConfigured
from django.utils import timezone
from django.utils.module_loading import import_string

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScoreJob:
    lead_id: int
    delay_ms: int
    enqueued_at: datetime

    @property
    def eligible_at(self) -> datetime:
        return self.enqueued_at + timedelta(milliseconds=self.delay_ms)


class ScoreQueue:
    """Accepts "recalculate lead X after delay_ms" requests."""

    def enqueue(self, lead_id, delay_ms: int = 0):
        """Schedule a job; returns a backend-specific handle, or None."""
        raise NotImplementedError


class CeleryScoreQueue(ScoreQueue):

    def enqueue(self, lead_id, delay_ms: int = 0):
        from leads.tasks import recalculate_lead_score

        try:
            result = recalculate_lead_score.apply_async(args=[lead_id], countdown=delay_ms / 1000)
        except Exception as e:
            logger.error(
                f"Could not enqueue score recalculation for lead {lead_id}: {e}",
                exc_info=True
            )
            return None
        logger.debug(f"Lead {lead_id} score recalculation queued in {delay_ms}ms, task_id={result.id}")
        return result.id


class InMemoryScoreQueue(ScoreQueue):
    """
    Delay queue held in process memory, for test runs only.

    Jobs come out of `dequeue_ready` ordered by eligibility time, ties in
    enqueue order. Nothing drains it but the caller, and jobs are lost on
    process shutdown, so it refuses to start unless settings.TESTING is set.
    """

    def __init__(self):
        if not getattr(settings, 'TESTING', False):
            raise ImproperlyConfigured(
                "InMemoryScoreQueue is only available in test runs; "
                "use CeleryScoreQueue or LoggingScoreQueue"
            )
        self._heap = []
        self._sequence = itertools.count()
        self._lock = threading.Lock()

    def enqueue(self, lead_id, delay_ms: int = 0, now: Optional[datetime] = None) -> ScoreJob:
        job = ScoreJob(lead_id=lead_id, delay_ms=delay_ms, enqueued_at=now or timezone.now())
        with self._lock:
            heapq.heappush(self._heap, (job.eligible_at, next(self._sequence), job))
        logger.debug(f"Lead {lead_id} score recalculation queued in {delay_ms}ms (in-memory)")
        return job

    def dequeue_ready(self, now: Optional[datetime] = None) -> List[ScoreJob]:
        now = now or timezone.now()
        ready = []
        with self._lock:
            while self._heap and self._heap[0][0] <= now:
                ready.append(heapq.heappop(self._heap)[2])
        return ready

    def pending(self) -> List[ScoreJob]:
        with self._lock:
            return [entry[2] for entry in sorted(self._heap)]

    def __len__(self):
        return len(self._heap)


class LoggingScoreQueue(ScoreQueue):

    def enqueue(self, lead_id, delay_ms: int = 0):
        logger.info(f"Score queue disabled, skipping recalculation for lead {lead_id} (delay {delay_ms}ms)")
        return None


@lru_cache(maxsize=None)
def get_score_queue() -> ScoreQueue:
    return import_string(settings.LEAD_SCORE_QUEUE_BACKEND)()


def reset_score_queue():
    """Forget the configured backend instance (after a settings change)."""
    get_score_queue.cache_clear()


def enqueue_score_recalculation(lead_id, delay_ms: float = 0):
    """
    Ask for lead `lead_id` to be rescored no earlier than `delay_ms` from now.

    Never raises; a failure is logged and None returned.
    """
    delay_ms = max(0, int(delay_ms))
    try:
        return get_score_queue().enqueue(lead_id, delay_ms)
    except Exception as e:
        logger.error(
            f"Score queue unavailable, lead {lead_id} left for reconciliation: {e}",
            exc_info=True
        )
        return None


def delay_for(trigger: str) -> int:
    """Configured delay (ms) for a trigger: create, update, interaction or assignment."""
    return settings.LEAD_SCORE_DELAYS[trigger]


def jittered_delay_ms(max_ms: Optional[int] = None) -> int:
    """Uniform random delay in [0, max_ms) used to spread bulk recalculations."""
    if max_ms is None:
        max_ms = settings.LEAD_SCORE_DELAYS['bulk_max']
    return int(random.random() * max_ms)
