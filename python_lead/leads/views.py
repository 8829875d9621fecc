"""
API views for lead scoring and engagement.

Every endpoint is scoped to the organization named in the X-Organization-ID
header, which the upstream auth layer sets.
"""
import logging
import uuid
from rest_framework.exceptions import APIException, ParseError
from rest_framework.views import APIView
from rest_framework.response import Response
from rest_framework import status
from django.contrib.auth import get_user_model
from django.utils import timezone
from django.utils.dateparse import parse_datetime
from django.views.decorators.csrf import csrf_exempt
from django.utils.decorators import method_decorator

from leads import selectors
from leads.models import Lead
from leads.services.engagement import InvalidInteractionError, record_interaction
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
from leads.services.queue import enqueue_score_recalculation
from leads.services.scoring import scoring_config

logger = logging.getLogger(__name__)

ORGANIZATION_HEADER = 'X-Organization-ID'
MAX_LIST_LIMIT = 200


class MissingOrganizationError(Exception):
    pass


def lead_payload(lead: Lead) -> dict:
    return {
        'id': lead.id,
        'organization_id': lead.organization_id,
        'project_id': lead.project_id,
        'first_name': lead.first_name,
        'last_name': lead.last_name,
        'email': lead.email,
        'phone': lead.phone,
        'source': lead.source,
        'status': lead.status,
        'qualification_status': lead.qualification_status,
        'budget': lead.budget,
        'requirements': lead.requirements,
        'assigned_to': lead.assigned_to_id,
        'score': lead.score,
        'grade': lead.score_grade,
        'priority': lead.priority,
        'confidence': lead.confidence,
        'last_score_update': lead.last_score_update,
        'engagement_metrics': lead.engagement_metrics,
        'next_follow_up_date': lead.next_follow_up_date,
        'created_at': lead.created_at,
        'updated_at': lead.updated_at,
    }


def _body(request) -> dict:
    data = request.data
    if not data:
        return {}
    if not isinstance(data, dict):
        raise InvalidLeadUpdateError("Request body must be a JSON object")
    return dict(data)


def _limit(request, default=50) -> int:
    try:
        value = int(request.query_params.get('limit', default))
    except (TypeError, ValueError):
        raise InvalidLeadUpdateError("limit must be an integer")
    return max(1, min(value, MAX_LIST_LIMIT))


def _user_or_none(user_id):
    if user_id in (None, ''):
        return None
    User = get_user_model()
    try:
        return User.objects.get(pk=user_id)
    except (User.DoesNotExist, ValueError, TypeError):
        raise InvalidLeadUpdateError(f"Unknown user: {user_id!r}")


@method_decorator(csrf_exempt, name='dispatch')
class LeadAPIView(APIView):
    """
    Base view for organization-scoped lead endpoints.

    Error mapping:
        400 Bad Request: missing organization header, malformed JSON,
            invalid payload or leads outside the organization
        404 Not Found: lead does not exist in the organization
        500 Internal Server Error: unexpected error (logged with traceback)
    """

    def initial(self, request, *args, **kwargs):
        # Correlation ID for request tracing
        self.correlation_id = str(uuid.uuid4())
        super().initial(request, *args, **kwargs)

    def organization_id(self, request) -> str:
        organization_id = request.headers.get(ORGANIZATION_HEADER, '').strip()
        if not organization_id:
            raise MissingOrganizationError()
        return organization_id

    def error(self, message, status_code):
        return Response(
            {
                'error': message,
                'correlation_id': getattr(self, 'correlation_id', None)
            },
            status=status_code
        )

    def handle_exception(self, exc):
        correlation_id = getattr(self, 'correlation_id', None)
        if isinstance(exc, MissingOrganizationError):
            return self.error(f'{ORGANIZATION_HEADER} header is required', status.HTTP_400_BAD_REQUEST)
        if isinstance(exc, ParseError):
            logger.warning(f"Malformed JSON payload: {exc}, correlation_id={correlation_id}")
            return self.error('Malformed JSON', status.HTTP_400_BAD_REQUEST)
        if isinstance(exc, Lead.DoesNotExist):
            return self.error('Lead not found', status.HTTP_404_NOT_FOUND)
        if isinstance(exc, LeadScopeError):
            return self.error(str(exc), status.HTTP_400_BAD_REQUEST)
        if isinstance(exc, (InvalidInteractionError, InvalidLeadUpdateError)):
            return self.error(str(exc), status.HTTP_400_BAD_REQUEST)
        if isinstance(exc, APIException):
            return super().handle_exception(exc)
        logger.error(
            f"Error handling {self.__class__.__name__} request: {exc}, "
            f"correlation_id={correlation_id}",
            exc_info=True
        )
        return self.error('Internal server error', status.HTTP_500_INTERNAL_SERVER_ERROR)


class LeadListCreateView(LeadAPIView):
    """
    POST /api/leads/
    - Creates the lead unscored and queues its first score calculation
    - Returns 201 with the stored lead
    """

    def post(self, request):
        organization_id = self.organization_id(request)
        data = _body(request)
        if not data.get('first_name') or not data.get('phone'):
            return self.error('first_name and phone are required', status.HTTP_400_BAD_REQUEST)
        if 'assigned_to' in data:
            data['assigned_to'] = _user_or_none(data['assigned_to'])

        lead = create_lead(organization_id, **data)
        logger.info(f"Lead {lead.id} created, correlation_id={self.correlation_id}")
        return Response(
            {
                'status': 'created',
                'lead': lead_payload(lead),
                'correlation_id': self.correlation_id
            },
            status=status.HTTP_201_CREATED
        )


class LeadDetailView(LeadAPIView):
    """GET, PATCH and DELETE /api/leads/<lead_id>/"""

    def get(self, request, lead_id):
        lead = selectors.get_lead(self.organization_id(request), lead_id)
        return Response({'status': 'ok', 'lead': lead_payload(lead)})

    def patch(self, request, lead_id):
        lead = selectors.get_lead(self.organization_id(request), lead_id)
        changes = _body(request)
        if 'assigned_to' in changes:
            changes['assigned_to'] = _user_or_none(changes['assigned_to'])

        lead, triggered = update_lead(lead, changes)
        return Response({
            'status': 'updated',
            'lead': lead_payload(lead),
            'score_recalculation_queued': triggered,
        })

    def delete(self, request, lead_id):
        lead = selectors.get_lead(self.organization_id(request), lead_id)
        delete_lead(lead)
        return Response({'status': 'deleted', 'lead_id': lead_id})


class LeadInteractionView(LeadAPIView):
    """POST /api/leads/<lead_id>/interactions/"""

    def post(self, request, lead_id):
        lead = selectors.get_lead(self.organization_id(request), lead_id)
        data = _body(request)
        scheduled_at = data.get('scheduled_at')
        if scheduled_at:
            try:
                scheduled_at = parse_datetime(str(scheduled_at))
            except ValueError:
                scheduled_at = None
            if scheduled_at is None:
                raise InvalidInteractionError("scheduled_at must be an ISO 8601 datetime")
            if timezone.is_naive(scheduled_at):
                scheduled_at = timezone.make_aware(scheduled_at)

        interaction = record_interaction(
            lead,
            request.user if getattr(request.user, 'is_authenticated', False) else None,
            type=data.get('type'),
            content=data.get('content'),
            direction=data.get('direction', ''),
            outcome=data.get('outcome', ''),
            next_action=data.get('next_action', ''),
            scheduled_at=scheduled_at,
        )
        return Response(
            {
                'status': 'recorded',
                'interaction_id': interaction.id,
                'lead_id': lead.id,
                'correlation_id': self.correlation_id
            },
            status=status.HTTP_201_CREATED
        )


class LeadAssignView(LeadAPIView):
    """POST /api/leads/<lead_id>/assign/ with {"user_id": ...} (null unassigns)"""

    def post(self, request, lead_id):
        lead = selectors.get_lead(self.organization_id(request), lead_id)
        user = _user_or_none(_body(request).get('user_id'))
        previous = assign_lead(lead, user)
        return Response({
            'status': 'assigned',
            'lead_id': lead.id,
            'assigned_to': lead.assigned_to_id,
            'previous_assignee': previous,
        })


class LeadBulkUpdateView(LeadAPIView):
    """POST /api/leads/bulk-update/ with {"lead_ids": [...], "updates": {...}}"""

    def post(self, request):
        organization_id = self.organization_id(request)
        data = _body(request)
        lead_ids = data.get('lead_ids') or []
        if not isinstance(lead_ids, list):
            return self.error('lead_ids must be a list', status.HTTP_400_BAD_REQUEST)
        updates = dict(data.get('updates') or {})
        if 'assigned_to' in updates:
            updates['assigned_to'] = _user_or_none(updates['assigned_to'])

        updated = bulk_update_leads(organization_id, lead_ids, updates)
        return Response({'status': 'updated', 'updated_count': updated})


class LeadScoreView(LeadAPIView):
    """
    GET /api/leads/<lead_id>/score/

    Returns the stored score state. When it is stale a recalculation is
    queued right away; the response still carries the stored values.
    """

    def get(self, request, lead_id):
        breakdown = selectors.get_score_breakdown(self.organization_id(request), lead_id)
        if breakdown['needsRecalculation']:
            enqueue_score_recalculation(breakdown['leadId'], 0)
        return Response({'status': 'ok', 'score': breakdown})


class LeadRecalculateView(LeadAPIView):
    """POST /api/leads/<lead_id>/score/recalculate/ queues a recalculation with no delay."""

    def post(self, request, lead_id):
        lead = selectors.get_lead(self.organization_id(request), lead_id)
        enqueue_score_recalculation(lead.id, 0)
        logger.info(f"Manual score recalculation requested for lead {lead.id}, correlation_id={self.correlation_id}")
        return Response(
            {
                'status': 'queued',
                'lead_id': lead.id,
                'correlation_id': self.correlation_id
            },
            status=status.HTTP_202_ACCEPTED
        )


class BulkRecalculateView(LeadAPIView):
    """
    POST /api/leads/score/bulk-recalculate/

    Body: {"lead_ids": [...]} or filters {"project_id", "assigned_to",
    "min_days_old"} selecting open leads with an old score. 400 when
    nothing matches.
    """

    def post(self, request):
        organization_id = self.organization_id(request)
        data = _body(request)
        lead_ids = data.get('lead_ids') or []
        if not isinstance(lead_ids, list):
            return self.error('lead_ids must be a list', status.HTTP_400_BAD_REQUEST)

        queued = bulk_recalculate_scores(
            organization_id,
            lead_ids,
            project_id=data.get('project_id') or None,
            assigned_to_id=data.get('assigned_to'),
            min_days_old=data.get('min_days_old'),
        )
        logger.info(f"Bulk score recalculation of {len(queued)} leads requested, correlation_id={self.correlation_id}")
        return Response(
            {
                'status': 'queued',
                'queued_count': len(queued),
                'lead_ids': queued,
                'correlation_id': self.correlation_id
            },
            status=status.HTTP_202_ACCEPTED
        )


class LeadScoreHistoryView(LeadAPIView):
    """GET /api/leads/<lead_id>/score/history/"""

    def get(self, request, lead_id):
        history = selectors.get_score_history(self.organization_id(request), lead_id, limit=_limit(request, 20))
        return Response({
            'status': 'ok',
            'lead_id': lead_id,
            'history': [
                {
                    'score': entry.score,
                    'grade': entry.score_grade,
                    'priority': entry.priority,
                    'confidence': entry.confidence,
                    'recorded_at': entry.recorded_at,
                }
                for entry in history
            ],
        })


class HighPriorityLeadsView(LeadAPIView):
    """GET /api/leads/high-priority/?threshold=High&limit=50"""

    def get(self, request):
        organization_id = self.organization_id(request)
        threshold = request.query_params.get('threshold', Lead.Priority.HIGH)
        try:
            leads = selectors.list_leads_above_priority(organization_id, threshold, limit=_limit(request))
        except ValueError as e:
            return self.error(str(e), status.HTTP_400_BAD_REQUEST)
        return Response({
            'status': 'ok',
            'count': len(leads),
            'leads': [lead_payload(lead) for lead in leads],
        })


class OverdueFollowUpsView(LeadAPIView):
    """GET /api/leads/follow-ups/overdue/"""

    def get(self, request):
        rows = selectors.list_overdue_follow_ups(self.organization_id(request), limit=_limit(request))
        return Response({
            'status': 'ok',
            'count': len(rows),
            'follow_ups': [
                {
                    'lead': lead_payload(row['lead']),
                    'followUpType': row['lead'].follow_up_type or None,
                    'notes': row['lead'].follow_up_notes or None,
                    'daysOverdue': row['daysOverdue'],
                    'urgency': row['urgency'],
                }
                for row in rows
            ],
        })


class LeadsNeedingAttentionView(LeadAPIView):
    """GET /api/leads/needs-attention/"""

    def get(self, request):
        leads = selectors.list_leads_needing_attention(self.organization_id(request), limit=_limit(request))
        return Response({
            'status': 'ok',
            'count': len(leads),
            'leads': [lead_payload(lead) for lead in leads],
        })


class ScoringConfigView(APIView):
    """GET /api/leads/scoring/config/ returns the effective scoring configuration."""

    def get(self, request):
        return Response({'status': 'ok', 'config': scoring_config()})
