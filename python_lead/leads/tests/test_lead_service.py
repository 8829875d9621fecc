"""
Tests for lead mutations and the recalculation triggers they fire.
"""
import pytest
from datetime import timedelta
from unittest.mock import patch

from django.utils import timezone

from leads.models import Lead
from leads.services.lead_service import (
    InvalidLeadUpdateError,
    LeadScopeError,
    assign_lead,
    bulk_recalculate_scores,
    bulk_update_leads,
    create_lead,
    delete_lead,
    update_lead,
)


@pytest.mark.django_db
class TestCreateLead:

    def test_new_lead_starts_unscored(self, organization_id, score_queue):
        lead = create_lead(organization_id, first_name='Arjun', phone='+91 99000 11122')

        assert lead.score == 0
        assert lead.score_grade == 'D'
        assert lead.priority == 'Very Low'
        assert lead.last_score_update is None

        [job] = score_queue.pending()
        assert job.lead_id == lead.id
        assert job.delay_ms == 2000

    def test_budget_defaults_to_self_reported(self, organization_id):
        lead = create_lead(organization_id, first_name='Arjun', phone='1', budget={'amount': 900000})

        assert lead.budget == {'amount': 900000, 'isValidated': False, 'source': 'Self-reported'}

    def test_derived_fields_cannot_be_set(self, organization_id):
        lead = create_lead(organization_id, first_name='Arjun', phone='1', score=99, priority='Critical')

        lead.refresh_from_db()
        assert lead.score == 0
        assert lead.priority == 'Very Low'

    def test_invalid_status_is_rejected(self, organization_id, score_queue):
        with pytest.raises(InvalidLeadUpdateError):
            create_lead(organization_id, first_name='Arjun', phone='1', status='Maybe')

        assert Lead.objects.count() == 0
        assert len(score_queue) == 0


@pytest.mark.django_db
class TestUpdateLead:

    def test_scoring_fact_change_triggers(self, lead, score_queue):
        lead, triggered = update_lead(lead, {'budget': {'amount': 1200000}})

        assert triggered is True
        [job] = score_queue.pending()
        assert job.delay_ms == 1000

    def test_contact_change_does_not_trigger(self, lead, score_queue):
        lead, triggered = update_lead(lead, {'email': 'priya@example.org'})

        assert triggered is False
        assert len(score_queue) == 0
        lead.refresh_from_db()
        assert lead.email == 'priya@example.org'

    def test_same_value_does_not_trigger(self, lead, score_queue):
        lead, triggered = update_lead(lead, {'status': lead.status})

        assert triggered is False
        assert len(score_queue) == 0

    def test_derived_fields_are_ignored(self, lead, score_queue):
        lead, triggered = update_lead(lead, {'score': 100, 'priority': 'Critical'})

        assert triggered is False
        lead.refresh_from_db()
        assert lead.score == 0
        assert lead.priority == 'Very Low'

    def test_update_does_not_clobber_worker_fields(self, lead):
        """Only the edited columns are written back."""
        Lead.objects.filter(pk=lead.pk).update(score=77, score_grade='B')

        update_lead(lead, {'status': Lead.Status.CONTACTED})

        lead.refresh_from_db()
        assert lead.status == Lead.Status.CONTACTED
        assert lead.score == 77
        assert lead.score_grade == 'B'


@pytest.mark.django_db
class TestAssignLead:

    def test_assignment_change_triggers(self, lead, agent, score_queue):
        previous = assign_lead(lead, agent)

        assert previous is None
        lead.refresh_from_db()
        assert lead.assigned_to_id == agent.id
        [job] = score_queue.pending()
        assert job.delay_ms == 1000

    def test_same_assignee_does_not_trigger(self, make_lead, agent, score_queue):
        lead = make_lead(assigned_to=agent)

        assert assign_lead(lead, agent) == agent.id
        assert len(score_queue) == 0


@pytest.mark.django_db
class TestBulkUpdateLeads:

    def test_one_jittered_job_per_lead(self, make_lead, organization_id, score_queue):
        leads = [make_lead() for _ in range(50)]

        with patch('leads.services.queue.random.random', side_effect=[i / 50 for i in range(50)]):
            updated = bulk_update_leads(organization_id, [lead.id for lead in leads], {'status': 'Contacted'})

        assert updated == 50
        assert Lead.objects.filter(status='Contacted').count() == 50
        jobs = score_queue.pending()
        assert sorted(job.lead_id for job in jobs) == sorted(lead.id for lead in leads)
        delays = sorted(job.delay_ms for job in jobs)
        assert delays[0] == 0
        assert delays[-1] == 4900
        assert len(set(delays)) == 50

    def test_foreign_lead_rejects_whole_batch(self, make_lead, organization_id, score_queue):
        own = make_lead()
        foreign = make_lead(organization_id='org-other')

        with pytest.raises(LeadScopeError):
            bulk_update_leads(organization_id, [own.id, foreign.id], {'status': 'Contacted'})

        own.refresh_from_db()
        assert own.status == Lead.Status.NEW
        assert len(score_queue) == 0

    def test_unknown_fields_are_rejected(self, lead, organization_id):
        with pytest.raises(InvalidLeadUpdateError):
            bulk_update_leads(organization_id, [lead.id], {'score': 100})

    def test_empty_ids_are_rejected(self, organization_id):
        with pytest.raises(InvalidLeadUpdateError):
            bulk_update_leads(organization_id, [], {'status': 'Contacted'})

    def test_bulk_assign_by_id(self, lead, agent, organization_id):
        bulk_update_leads(organization_id, [lead.id], {'assigned_to': agent.id})

        lead.refresh_from_db()
        assert lead.assigned_to_id == agent.id

    def test_non_integer_ids_are_rejected(self, lead, organization_id, score_queue):
        with pytest.raises(InvalidLeadUpdateError):
            bulk_update_leads(organization_id, [lead.id, 'abc'], {'status': 'Contacted'})

        lead.refresh_from_db()
        assert lead.status == Lead.Status.NEW
        assert len(score_queue) == 0

    def test_numeric_string_ids_are_accepted(self, lead, organization_id):
        assert bulk_update_leads(organization_id, [str(lead.id), lead.id], {'status': 'Contacted'}) == 1


@pytest.mark.django_db
class TestBulkRecalculateScores:

    def test_explicit_ids(self, make_lead, organization_id, score_queue):
        leads = [make_lead(last_score_update=timezone.now()) for _ in range(3)]

        with patch('leads.services.queue.random.random', return_value=0.5):
            queued = bulk_recalculate_scores(organization_id, [lead.id for lead in leads])

        assert queued == [lead.id for lead in leads]
        assert [job.delay_ms for job in score_queue.pending()] == [2500, 2500, 2500]

    def test_explicit_ids_outside_organization(self, make_lead, organization_id, score_queue):
        foreign = make_lead(organization_id='org-other')

        with pytest.raises(LeadScopeError):
            bulk_recalculate_scores(organization_id, [foreign.id])
        assert len(score_queue) == 0

    def test_selects_old_open_leads_by_filters(self, make_lead, agent, organization_id, score_queue):
        now = timezone.now()
        never = make_lead(project_id='tower-a')
        old = make_lead(project_id='tower-a', last_score_update=now - timedelta(days=3))
        make_lead(project_id='tower-a', last_score_update=now)
        make_lead(project_id='tower-a', status=Lead.Status.BOOKED)
        make_lead(project_id='tower-b')
        make_lead(project_id='tower-a', organization_id='org-other')
        assigned = make_lead(project_id='tower-a', assigned_to=agent)

        assert bulk_recalculate_scores(organization_id, project_id='tower-a', min_days_old=2) == [
            never.id, assigned.id, old.id
        ]
        assert bulk_recalculate_scores(organization_id, assigned_to_id=agent.id) == [assigned.id]

    def test_nothing_to_recalculate(self, make_lead, organization_id, score_queue):
        make_lead(last_score_update=timezone.now())

        with pytest.raises(LeadScopeError):
            bulk_recalculate_scores(organization_id)
        assert len(score_queue) == 0

    @pytest.mark.parametrize('min_days_old', ['soon', -1])
    def test_invalid_age_filter(self, organization_id, min_days_old):
        with pytest.raises(InvalidLeadUpdateError):
            bulk_recalculate_scores(organization_id, min_days_old=min_days_old)


@pytest.mark.django_db
class TestDeleteLead:

    def test_pending_jobs_become_no_ops(self, lead, run_ready_jobs, score_queue):
        update_lead(lead, {'status': Lead.Status.CONTACTED})
        lead_id = lead.id

        delete_lead(lead)
        jobs = run_ready_jobs()

        assert [job.lead_id for job in jobs] == [lead_id]
        assert not Lead.objects.filter(pk=lead_id).exists()
