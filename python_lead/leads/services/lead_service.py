"""
Lead mutations and the score recalculation triggers they fire.

Every write here is field-level (`save(update_fields=...)` or
`QuerySet.update`) so a request never overwrites derived fields the score
worker has written in the meantime.
"""
import logging
from typing import Iterable, List, Optional, Tuple

from django.conf import settings
from django.db import models
from django.utils import timezone

from leads.models import Lead
from leads.services.queue import delay_for, enqueue_score_recalculation, jittered_delay_ms
from leads.services.recalculation import find_stale_lead_ids

logger = logging.getLogger(__name__)

# Facts the score policy reads; changing one makes the score stale
SCORING_FIELDS = ('budget', 'requirements', 'status', 'qualification_status', 'source', 'assigned_to')

EDITABLE_FIELDS = frozenset({
    'first_name', 'last_name', 'email', 'phone', 'project_id',
    'budget', 'requirements', 'status', 'qualification_status', 'source', 'assigned_to',
})

BULK_FIELDS = frozenset({'status', 'qualification_status', 'source', 'project_id', 'assigned_to'})

CHOICE_FIELDS = {
    'status': Lead.Status,
    'qualification_status': Lead.QualificationStatus,
    'source': Lead.Source,
}


class LeadServiceError(Exception):
    """Base class for lead mutation errors."""
    pass


class LeadScopeError(LeadServiceError):
    """Raised when leads are missing or belong to another organization."""
    pass


class InvalidLeadUpdateError(LeadServiceError, ValueError):
    """Raised when an update payload is empty or carries invalid values."""
    pass


def _scoring_value(lead: Lead, name: str):
    if name == 'assigned_to':
        return lead.assigned_to_id
    return getattr(lead, name)


def _validate_choices(values: dict):
    for name, choices in CHOICE_FIELDS.items():
        if name in values and values[name] not in choices.values:
            raise InvalidLeadUpdateError(f"Invalid {name}: {values[name]!r}")


def _lead_id_list(lead_ids) -> List[int]:
    try:
        ids = [int(lead_id) for lead_id in lead_ids]
    except (TypeError, ValueError):
        raise InvalidLeadUpdateError("Lead IDs must be integers") from None
    return list(dict.fromkeys(ids))


def _normalize_budget(budget):
    if not budget:
        return None
    if not isinstance(budget, dict):
        raise InvalidLeadUpdateError("budget must be an object")
    return {
        **budget,
        'isValidated': budget.get('isValidated', False),
        'source': budget.get('source', 'Self-reported'),
    }


def create_lead(organization_id: str, **fields) -> Lead:
    """
    Create a lead in the unscored state (score 0, grade D, priority Very Low)
    and queue its first score calculation.
    """
    ignored = set(fields) - EDITABLE_FIELDS
    if ignored:
        logger.warning(f"Ignoring non-editable lead fields on create: {sorted(ignored)}")
    values = {name: value for name, value in fields.items() if name in EDITABLE_FIELDS}
    _validate_choices(values)
    if 'budget' in values:
        values['budget'] = _normalize_budget(values['budget'])

    lead = Lead.objects.create(organization_id=organization_id, **values)
    logger.info(f"Lead {lead.id} created for organization {organization_id}")

    enqueue_score_recalculation(lead.id, delay_for('create'))
    return lead


def update_lead(lead: Lead, changes: dict) -> Tuple[Lead, bool]:
    """
    Apply `changes` to editable lead fields.

    Returns (lead, triggered) where `triggered` tells whether a scoring fact
    changed and a recalculation was queued.
    """
    values = {name: value for name, value in changes.items() if name in EDITABLE_FIELDS}
    ignored = set(changes) - EDITABLE_FIELDS
    if ignored:
        logger.warning(f"Ignoring non-editable fields on lead {lead.id}: {sorted(ignored)}")
    if not values:
        return lead, False
    _validate_choices(values)
    if 'budget' in values:
        values['budget'] = _normalize_budget(values['budget'])

    before = {name: _scoring_value(lead, name) for name in SCORING_FIELDS}
    for name, value in values.items():
        setattr(lead, name, value)
    lead.save(update_fields=[*values, 'updated_at'])

    changed = [name for name in SCORING_FIELDS if before[name] != _scoring_value(lead, name)]
    if changed:
        logger.info(f"Lead {lead.id} scoring facts changed: {changed}")
        enqueue_score_recalculation(lead.id, delay_for('update'))
    return lead, bool(changed)


def assign_lead(lead: Lead, user) -> Optional[int]:
    """
    Assign the lead to `user` (or unassign with None).

    Returns the previous assignee id.
    """
    previous = lead.assigned_to_id
    lead.assigned_to = user
    lead.save(update_fields=['assigned_to', 'updated_at'])

    if previous != lead.assigned_to_id:
        logger.info(f"Lead {lead.id} reassigned from {previous} to {lead.assigned_to_id}")
        enqueue_score_recalculation(lead.id, delay_for('assignment'))
    return previous


def bulk_update_leads(organization_id: str, lead_ids: Iterable, updates: dict) -> int:
    """
    Apply the same field updates to many leads of one organization.

    Each lead gets its own recalculation job with a random delay so the
    worker does not hit the database with all of them at once.

    Returns the number of leads updated.

    Raises:
        InvalidLeadUpdateError: no ids, no usable updates or invalid values
        LeadScopeError: some ids are unknown or belong to another organization
    """
    lead_ids = _lead_id_list(lead_ids or [])
    if not lead_ids:
        raise InvalidLeadUpdateError("Lead IDs are required")
    values = {name: value for name, value in (updates or {}).items() if name in BULK_FIELDS}
    if not values:
        raise InvalidLeadUpdateError(f"Update data is required (allowed fields: {sorted(BULK_FIELDS)})")
    _validate_choices(values)

    scoped = Lead.objects.filter(pk__in=lead_ids, organization_id=organization_id)
    if scoped.count() != len(lead_ids):
        raise LeadScopeError("Some leads not found or not accessible")

    if 'assigned_to' in values and not isinstance(values['assigned_to'], models.Model):
        values['assigned_to_id'] = values.pop('assigned_to')
    updated = scoped.update(updated_at=timezone.now(), **values)
    logger.info(f"Bulk updated {updated} leads for organization {organization_id}: {sorted(values)}")

    for lead_id in lead_ids:
        enqueue_score_recalculation(lead_id, jittered_delay_ms())
    return updated


def delete_lead(lead: Lead):
    """
    Delete a lead and, by cascade, its interactions and score history.
    Jobs already queued for it find nothing and do nothing.
    """
    lead_id = lead.pk
    lead.delete()
    logger.info(f"Lead {lead_id} deleted")


def bulk_recalculate_scores(organization_id: str, lead_ids: Optional[Iterable] = None, *,
                            project_id: Optional[str] = None, assigned_to_id=None,
                            min_days_old: Optional[int] = None) -> List[int]:
    """
    Queue score recalculation for many leads of one organization.

    With `lead_ids` exactly those leads are queued. Without, the open leads
    matching `project_id` and `assigned_to_id` whose score is missing, older
    than `min_days_old` days (default LEAD_STALE_SCORE_DAYS) or missing an
    overdue escalation are selected, up to LEAD_BULK_RECALCULATE_LIMIT.

    Returns the ids queued, each with a jittered delay.

    Raises:
        InvalidLeadUpdateError: malformed ids or filters
        LeadScopeError: some ids are not in the organization, or nothing matched
    """
    if lead_ids:
        lead_ids = _lead_id_list(lead_ids)
        found = Lead.objects.filter(pk__in=lead_ids, organization_id=organization_id).count()
        if found != len(lead_ids):
            raise LeadScopeError("Some leads not found or not accessible")
    else:
        if min_days_old is not None:
            try:
                min_days_old = int(min_days_old)
            except (TypeError, ValueError):
                raise InvalidLeadUpdateError("min_days_old must be an integer") from None
            if min_days_old < 0:
                raise InvalidLeadUpdateError("min_days_old must not be negative")
        if assigned_to_id is not None:
            try:
                assigned_to_id = int(assigned_to_id)
            except (TypeError, ValueError):
                raise InvalidLeadUpdateError(f"Unknown user: {assigned_to_id!r}") from None
        lead_ids = find_stale_lead_ids(
            limit=settings.LEAD_BULK_RECALCULATE_LIMIT,
            organization_id=organization_id,
            project_id=project_id,
            assigned_to_id=assigned_to_id,
            min_days_old=min_days_old,
        )

    if not lead_ids:
        raise LeadScopeError("No leads found for score recalculation")

    for lead_id in lead_ids:
        enqueue_score_recalculation(lead_id, jittered_delay_ms())
    logger.info(f"Queued bulk score recalculation of {len(lead_ids)} leads for organization {organization_id}")
    return lead_ids
