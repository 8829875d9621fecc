"""
Tests for the lead API views.
"""
import pytest
import json
from datetime import timedelta
from unittest.mock import patch
from django.utils import timezone
from rest_framework.test import APIClient, APIRequestFactory

from leads.models import Interaction, Lead
from leads.views import LeadListCreateView


@pytest.fixture
def api_client(organization_id):
    return APIClient(HTTP_X_ORGANIZATION_ID=organization_id)


@pytest.mark.django_db
class TestLeadEndpoints:
    """Tests for lead mutation endpoints."""

    def test_create_lead(self, api_client, organization_id, score_queue):
        response = api_client.post(
            '/api/leads/',
            {'first_name': 'Arjun', 'phone': '+91 99000 11122', 'source': 'Referral'},
            format='json'
        )

        assert response.status_code == 201
        assert response.data['status'] == 'created'
        assert response.data['lead']['score'] == 0
        assert response.data['lead']['organization_id'] == organization_id
        assert [job.delay_ms for job in score_queue.pending()] == [2000]

    def test_missing_organization_header(self, score_queue):
        response = APIClient().post('/api/leads/', {'first_name': 'Arjun', 'phone': '1'}, format='json')

        assert response.status_code == 400
        assert 'X-Organization-ID' in response.data['error']
        assert Lead.objects.count() == 0

    def test_missing_required_fields(self, api_client):
        response = api_client.post('/api/leads/', {'first_name': 'Arjun'}, format='json')
        assert response.status_code == 400

    def test_malformed_json(self, organization_id):
        factory = APIRequestFactory()
        request = factory.post(
            '/api/leads/',
            data='{"first_name": ',
            content_type='application/json',
            HTTP_X_ORGANIZATION_ID=organization_id
        )

        response = LeadListCreateView.as_view()(request)

        assert response.status_code == 400
        assert response.data['error'] == 'Malformed JSON'
        assert 'correlation_id' in response.data

    def test_unexpected_error_returns_500(self, api_client):
        with patch('leads.views.create_lead', side_effect=RuntimeError('boom')):
            response = api_client.post('/api/leads/', {'first_name': 'Arjun', 'phone': '1'}, format='json')

        assert response.status_code == 500
        assert response.data['error'] == 'Internal server error'

    def test_patch_lead(self, api_client, lead, score_queue):
        response = api_client.patch(f'/api/leads/{lead.id}/', {'budget': {'amount': 1200000}}, format='json')

        assert response.status_code == 200
        assert response.data['score_recalculation_queued'] is True
        assert response.data['lead']['budget']['amount'] == 1200000

    def test_patch_invalid_status(self, api_client, lead):
        response = api_client.patch(f'/api/leads/{lead.id}/', {'status': 'Maybe'}, format='json')
        assert response.status_code == 400

    def test_lead_of_other_organization_is_not_found(self, lead):
        response = APIClient(HTTP_X_ORGANIZATION_ID='org-other').get(f'/api/leads/{lead.id}/')
        assert response.status_code == 404

    def test_delete_lead(self, api_client, lead):
        response = api_client.delete(f'/api/leads/{lead.id}/')

        assert response.status_code == 200
        assert not Lead.objects.filter(pk=lead.id).exists()

    def test_add_interaction(self, api_client, lead, score_queue, django_capture_on_commit_callbacks):
        due = (timezone.now() + timedelta(days=1)).isoformat()
        with django_capture_on_commit_callbacks(execute=True):
            response = api_client.post(
                f'/api/leads/{lead.id}/interactions/',
                {
                    'type': 'Call',
                    'direction': 'Outbound',
                    'content': 'Discussed 3BHK options',
                    'next_action': 'Send brochure',
                    'scheduled_at': due,
                },
                format='json'
            )

        assert response.status_code == 201
        assert Interaction.objects.filter(lead=lead).count() == 1
        lead.refresh_from_db()
        assert lead.total_interactions == 1
        assert lead.follow_up_notes == 'Send brochure'
        # Rescore now, and again once the follow-up falls due
        now_job, due_job = score_queue.pending()
        assert now_job.delay_ms == 2000
        assert due_job.delay_ms > 86400 * 1000 - 60 * 1000

    def test_add_invalid_interaction(self, api_client, lead):
        response = api_client.post(
            f'/api/leads/{lead.id}/interactions/',
            {'type': 'Telegram', 'content': 'Hi'},
            format='json'
        )
        assert response.status_code == 400

    def test_assign(self, api_client, lead, agent, score_queue):
        response = api_client.post(f'/api/leads/{lead.id}/assign/', {'user_id': agent.id}, format='json')

        assert response.status_code == 200
        assert response.data['assigned_to'] == agent.id
        assert [job.delay_ms for job in score_queue.pending()] == [1000]

    def test_assign_unknown_user(self, api_client, lead):
        response = api_client.post(f'/api/leads/{lead.id}/assign/', {'user_id': 98765}, format='json')
        assert response.status_code == 400

    def test_bulk_update(self, api_client, make_lead, score_queue):
        leads = [make_lead() for _ in range(3)]

        response = api_client.post(
            '/api/leads/bulk-update/',
            {'lead_ids': [lead.id for lead in leads], 'updates': {'status': 'Qualified'}},
            format='json'
        )

        assert response.status_code == 200
        assert response.data['updated_count'] == 3
        assert len(score_queue) == 3

    def test_bulk_update_outside_organization(self, api_client, make_lead):
        foreign = make_lead(organization_id='org-other')

        response = api_client.post(
            '/api/leads/bulk-update/',
            {'lead_ids': [foreign.id], 'updates': {'status': 'Qualified'}},
            format='json'
        )

        assert response.status_code == 400
        foreign.refresh_from_db()
        assert foreign.status == Lead.Status.NEW

    def test_bulk_update_with_non_integer_ids(self, api_client, lead):
        response = api_client.post(
            '/api/leads/bulk-update/',
            {'lead_ids': ['abc'], 'updates': {'status': 'Qualified'}},
            format='json'
        )

        assert response.status_code == 400
        assert 'integers' in response.data['error']


@pytest.mark.django_db
class TestScoreEndpoints:
    """Tests for score read endpoints."""

    def test_stale_score_read_queues_recalculation(self, api_client, lead, score_queue):
        response = api_client.get(f'/api/leads/{lead.id}/score/')

        assert response.status_code == 200
        assert response.data['score']['needsRecalculation'] is True
        [job] = score_queue.pending()
        assert job.delay_ms == 0

    def test_fresh_score_read_does_not_queue(self, api_client, make_lead, score_queue):
        lead = make_lead(last_score_update=timezone.now())

        api_client.get(f'/api/leads/{lead.id}/score/')

        assert len(score_queue) == 0

    def test_manual_recalculation(self, api_client, lead, score_queue):
        response = api_client.post(f'/api/leads/{lead.id}/score/recalculate/')

        assert response.status_code == 202
        assert response.data['status'] == 'queued'
        assert score_queue.pending()[0].lead_id == lead.id

    def test_bulk_recalculate_explicit_ids(self, api_client, make_lead, score_queue):
        leads = [make_lead() for _ in range(3)]

        response = api_client.post(
            '/api/leads/score/bulk-recalculate/',
            {'lead_ids': [lead.id for lead in leads]},
            format='json'
        )

        assert response.status_code == 202
        assert response.data['queued_count'] == 3
        assert sorted(job.lead_id for job in score_queue.pending()) == sorted(lead.id for lead in leads)

    def test_bulk_recalculate_by_filters(self, api_client, make_lead, agent, score_queue):
        now = timezone.now()
        old = make_lead(project_id='tower-a', assigned_to=agent, last_score_update=now - timedelta(days=10))
        make_lead(project_id='tower-a', assigned_to=agent, last_score_update=now)
        make_lead(project_id='tower-b', assigned_to=agent, last_score_update=now - timedelta(days=10))

        response = api_client.post(
            '/api/leads/score/bulk-recalculate/',
            {'project_id': 'tower-a', 'assigned_to': agent.id, 'min_days_old': 7},
            format='json'
        )

        assert response.status_code == 202
        assert response.data['lead_ids'] == [old.id]

    def test_bulk_recalculate_nothing_matches(self, api_client, make_lead, score_queue):
        make_lead(last_score_update=timezone.now())

        response = api_client.post('/api/leads/score/bulk-recalculate/', {}, format='json')

        assert response.status_code == 400
        assert response.data['error'] == 'No leads found for score recalculation'
        assert len(score_queue) == 0

    def test_bulk_recalculate_other_organization(self, make_lead):
        lead = make_lead()

        response = APIClient(HTTP_X_ORGANIZATION_ID='org-other').post(
            '/api/leads/score/bulk-recalculate/',
            {'lead_ids': [lead.id]},
            format='json'
        )

        assert response.status_code == 400

    def test_score_history(self, api_client, lead, run_ready_jobs):
        api_client.post(f'/api/leads/{lead.id}/score/recalculate/')
        run_ready_jobs()

        response = api_client.get(f'/api/leads/{lead.id}/score/history/')

        assert response.status_code == 200
        assert [entry['score'] for entry in response.data['history']] == [38]

    def test_high_priority(self, api_client, make_lead):
        hot = make_lead(score=88, priority='Critical')
        make_lead(score=30)

        response = api_client.get('/api/leads/high-priority/', {'threshold': 'High'})

        assert response.status_code == 200
        assert [lead['id'] for lead in response.data['leads']] == [hot.id]

    def test_high_priority_bad_threshold(self, api_client):
        response = api_client.get('/api/leads/high-priority/', {'threshold': 'Urgent'})
        assert response.status_code == 400

    def test_overdue_follow_ups(self, api_client, make_lead):
        lead = make_lead(next_follow_up_date=timezone.now() - timedelta(days=10), follow_up_type='Call')

        response = api_client.get('/api/leads/follow-ups/overdue/')

        assert response.status_code == 200
        [row] = response.data['follow_ups']
        assert row['lead']['id'] == lead.id
        assert row['urgency'] == 'Critical'

    def test_needs_attention(self, api_client, make_lead):
        low = make_lead(score=10)

        response = api_client.get('/api/leads/needs-attention/')

        assert [lead['id'] for lead in response.data['leads']] == [low.id]

    def test_scoring_config(self, api_client):
        response = api_client.get('/api/leads/scoring/config/')

        assert response.status_code == 200
        assert response.data['config']['budget_alignment']['weight'] == 0.30
        assert json.loads(json.dumps(response.data['config'])) == response.data['config']
