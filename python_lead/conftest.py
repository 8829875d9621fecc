import os
import sys
import pytest

# Add the project root to the path
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'sales_crm.settings')


def pytest_configure(config):
    """Make sure settings pick the SQLite database and in-memory broker."""
    os.environ.setdefault('USE_SQLITE_FOR_TESTS', 'true')


@pytest.fixture(autouse=True)
def score_queue(settings):
    """
    In-process score queue, fresh for every test.

    Jobs stay in the queue until a test drains them with `run_ready_jobs`.
    """
    from leads.services.queue import get_score_queue, reset_score_queue

    settings.LEAD_SCORE_QUEUE_BACKEND = 'leads.services.queue.InMemoryScoreQueue'
    reset_score_queue()
    yield get_score_queue()
    reset_score_queue()


@pytest.fixture
def run_ready_jobs(score_queue):
    """Run every queued job that is eligible at `now` (default: far future)."""
    from datetime import timedelta
    from django.utils import timezone
    from leads.services.recalculation import recalculate_score

    def run(now=None):
        now = now or timezone.now() + timedelta(days=1)
        jobs = score_queue.dequeue_ready(now)
        for job in jobs:
            recalculate_score(job.lead_id)
        return jobs

    return run


@pytest.fixture
def organization_id():
    return 'org-acme'


@pytest.fixture
def agent(django_user_model):
    return django_user_model.objects.create_user(username='agent', password='not-used')


@pytest.fixture
def make_lead(organization_id):
    """Factory for leads stored directly, without queueing a score job."""
    from leads.models import Lead

    def make(**fields):
        fields.setdefault('organization_id', organization_id)
        fields.setdefault('first_name', 'Priya')
        fields.setdefault('last_name', 'Raman')
        fields.setdefault('phone', '+91 98450 12345')
        return Lead.objects.create(**fields)

    return make


@pytest.fixture
def lead(make_lead):
    return make_lead(email='priya.raman@example.com')
