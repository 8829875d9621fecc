"""
Lead score policy.

Pure functions that turn a lead snapshot and an interaction summary into a
score, grade, priority and confidence. Nothing in here touches the database
or the job queue, so the policy can be tuned or swapped (LEAD_SCORE_POLICY)
without touching the scheduling machinery.
"""
import copy
import logging
import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, Optional, Tuple

from django.conf import settings
from django.utils.module_loading import import_string

logger = logging.getLogger(__name__)

GRADE_BANDS = ((85, 'A'), (65, 'B'), (40, 'C'))
LOWEST_GRADE = 'D'

PRIORITY_TIERS = ('Very Low', 'Low', 'Medium', 'High', 'Critical')
PRIORITY_BANDS = ((85, 'Critical'), (75, 'High'), (60, 'Medium'), (40, 'Low'))

# Statuses one step away from a booking
BOOKING_ADJACENT_STATUSES = frozenset({'Site Visit Completed', 'Negotiating'})

ENGAGEMENT_WINDOW_DAYS = 30

DEFAULT_SCORING_CONFIG = {
    'budget_alignment': {
        'weight': 0.30,
        'fallback': 'no_budget',
        'rules': {
            'exact_match': 100,
            'within_10_percent': 85,
            'within_20_percent': 70,
            'within_30_percent': 50,
            'below_30_percent': 20,
            'no_budget': 40,
            'validated_bonus': 10,
        },
    },
    'engagement_level': {
        'weight': 0.25,
        'fallback': 'no_engagement',
        'rules': {
            'high_engagement': 100,
            'medium_engagement': 75,
            'low_engagement': 50,
            'no_engagement': 10,
            'responsive_bonus': 10,
        },
    },
    'timeline_urgency': {
        'weight': 0.20,
        'fallback': 'no_timeline',
        'rules': {
            'immediate': 100,
            'within_3_months': 85,
            'within_6_months': 65,
            'within_12_months': 45,
            'long_term': 25,
            'no_timeline': 35,
        },
    },
    'source_quality': {
        'weight': 0.15,
        'fallback': 'other',
        'rules': {
            'referral': 100,
            'walk_in': 90,
            'website': 75,
            'property_portal': 70,
            'social_media': 60,
            'advertisement': 50,
            'cold_call': 30,
            'other': 40,
        },
    },
    'recency_factor': {
        'weight': 0.10,
        'fallback': 'older',
        'rules': {
            'within_24_hours': 100,
            'within_7_days': 85,
            'within_30_days': 70,
            'within_90_days': 50,
            'older': 25,
        },
    },
    'adjustments': {
        'status': {
            'Qualified': 5,
            'Site Visit Scheduled': 5,
            'Site Visit Completed': 8,
            'Negotiating': 10,
            'Booked': 10,
            'Lost': -20,
            'Unqualified': -20,
        },
        'qualification_status': {
            'Partially Qualified': 3,
            'Fully Qualified': 6,
            'Disqualified': -15,
        },
        'assigned': 2,
    },
}

# Share of confidence contributed by each input when it is present
CONFIDENCE_WEIGHTS = {
    'budget_amount': 30,
    'budget_validated': 10,
    'timeline': 15,
    'requirement_details': 10,
    'source': 10,
    'interactions': 15,
    'assignment': 10,
}


@dataclass(frozen=True)
class LeadSnapshot:
    """Read-only view of the lead facts the policy scores."""
    as_of: datetime
    created_at: Optional[datetime] = None
    status: str = 'New'
    qualification_status: str = 'Not Qualified'
    source: str = 'Other'
    budget: Optional[Dict[str, Any]] = None
    requirements: Dict[str, Any] = field(default_factory=dict)
    has_assignee: bool = False
    total_interactions: int = 0
    response_rate: float = 0.0
    last_interaction_date: Optional[datetime] = None
    follow_up_overdue: bool = False

    @classmethod
    def from_lead(cls, lead, as_of: datetime, follow_up_overdue: bool = False) -> 'LeadSnapshot':
        return cls(
            as_of=as_of,
            created_at=lead.created_at,
            status=lead.status,
            qualification_status=lead.qualification_status,
            source=lead.source,
            budget=copy.deepcopy(lead.budget),
            requirements=copy.deepcopy(lead.requirements) if isinstance(lead.requirements, dict) else {},
            has_assignee=lead.assigned_to_id is not None,
            total_interactions=lead.total_interactions,
            response_rate=lead.response_rate,
            last_interaction_date=lead.last_interaction_date,
            follow_up_overdue=follow_up_overdue,
        )


@dataclass(frozen=True)
class InteractionSummary:
    """Aggregate of a lead's recent interaction log."""
    total: int = 0
    recent_count: int = 0
    inbound_count: int = 0
    counts_by_type: Dict[str, int] = field(default_factory=dict)
    last_interaction_at: Optional[datetime] = None

    @classmethod
    def from_interactions(cls, interactions: Iterable, as_of: datetime,
                          window_days: int = ENGAGEMENT_WINDOW_DAYS) -> 'InteractionSummary':
        total = recent = inbound = 0
        counts_by_type: Dict[str, int] = {}
        last = None
        for interaction in interactions:
            total += 1
            counts_by_type[interaction.type] = counts_by_type.get(interaction.type, 0) + 1
            if interaction.direction == 'Inbound':
                inbound += 1
            created = interaction.created_at
            if created is None:
                continue
            if (as_of - created).total_seconds() <= window_days * 86400:
                recent += 1
            if last is None or created > last:
                last = created
        return cls(
            total=total,
            recent_count=recent,
            inbound_count=inbound,
            counts_by_type=counts_by_type,
            last_interaction_at=last,
        )


@dataclass(frozen=True)
class ScoreResult:
    score: int
    grade: str
    priority: str
    confidence: int
    breakdown: Dict[str, Any] = field(default_factory=dict)


def grade_for_score(score: int) -> str:
    """Map a 0-100 score onto the A/B/C/D bands."""
    for threshold, grade in GRADE_BANDS:
        if score >= threshold:
            return grade
    return LOWEST_GRADE


def priority_for_score(score: int) -> str:
    for threshold, priority in PRIORITY_BANDS:
        if score >= threshold:
            return priority
    return PRIORITY_TIERS[0]


def escalate_priority(priority: str, tiers: int = 1) -> str:
    """Raise a priority by `tiers` steps, capped at Critical."""
    index = PRIORITY_TIERS.index(priority)
    return PRIORITY_TIERS[min(index + tiers, len(PRIORITY_TIERS) - 1)]


def priority_rank(priority: str) -> int:
    return PRIORITY_TIERS.index(priority)


def _to_number(value) -> Optional[float]:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.replace(',', '').strip())
        except ValueError:
            return None
    else:
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def _merge_config(base: dict, overrides: dict) -> dict:
    merged = copy.deepcopy(base)
    for key, value in (overrides or {}).items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge_config(merged[key], value)
        else:
            merged[key] = value
    return merged


def scoring_config() -> dict:
    """Effective scoring configuration (defaults merged with LEAD_SCORING_CONFIG)."""
    return _merge_config(DEFAULT_SCORING_CONFIG, getattr(settings, 'LEAD_SCORING_CONFIG', {}))


class ScorePolicy:
    """
    Base class for score policies.

    Subclasses implement `evaluate`, returning the unclamped total, the
    confidence and a JSON-serialisable breakdown. `compute` clamps the score
    and derives grade and priority from it, so those can never drift from
    the score whatever the subclass does.
    """

    def evaluate(self, snapshot: LeadSnapshot, summary: InteractionSummary) -> Tuple[float, int, dict]:
        raise NotImplementedError

    def compute(self, snapshot: LeadSnapshot, summary: InteractionSummary) -> ScoreResult:
        total, confidence, breakdown = self.evaluate(snapshot, summary)
        # Halves round up
        score = max(0, min(100, int(math.floor(total + 0.5))))
        priority = priority_for_score(score)
        if snapshot.follow_up_overdue or snapshot.status in BOOKING_ADJACENT_STATUSES:
            priority = escalate_priority(priority)
        return ScoreResult(
            score=score,
            grade=grade_for_score(score),
            priority=priority,
            confidence=max(0, min(100, int(confidence))),
            breakdown=breakdown,
        )


class DefaultScorePolicy(ScorePolicy):
    """
    Weighted-component policy: budget alignment, engagement, timeline
    urgency, source quality and recency, plus flat adjustments for pipeline
    stage, qualification and assignment.
    """

    def __init__(self, config: Optional[dict] = None, reference_unit_price: Optional[float] = None):
        self.config = _merge_config(DEFAULT_SCORING_CONFIG, config) if config is not None else scoring_config()
        if reference_unit_price is None:
            reference_unit_price = getattr(settings, 'LEAD_SCORING_REFERENCE_UNIT_PRICE', 1000000)
        self.reference_unit_price = float(reference_unit_price)

    def evaluate(self, snapshot, summary):
        components = (
            ('budget_alignment', self._budget_alignment),
            ('engagement_level', self._engagement_level),
            ('timeline_urgency', self._timeline_urgency),
            ('source_quality', self._source_quality),
            ('recency_factor', self._recency_factor),
        )
        breakdown = {}
        total = 0.0
        for name, component in components:
            section = self.config[name]
            rules = section['rules']
            try:
                raw, reasoning = component(snapshot, summary, rules)
                entry = {'reasoning': reasoning}
            except (TypeError, ValueError, AttributeError, KeyError) as e:
                logger.warning(f"Score component {name} fell back to default: {e}")
                raw = rules[section['fallback']]
                entry = {'reasoning': f"Error calculating {name.replace('_', ' ')}", 'error': str(e)}
            weighted = raw * section['weight']
            entry.update({'rawScore': raw, 'weightedScore': round(weighted, 2), 'weight': section['weight']})
            breakdown[name] = entry
            total += weighted

        adjustments = self._adjustments(snapshot)
        breakdown['adjustments'] = adjustments
        total += sum(adjustments.values())
        return total, self._confidence(snapshot, summary), breakdown

    def _budget_alignment(self, snapshot, summary, rules):
        budget = snapshot.budget
        if not isinstance(budget, dict):
            return rules['no_budget'], 'No budget specified'

        # A range is judged by its upper bound; zero or negative values are unset
        amount = None
        for key in ('amount', 'max', 'min'):
            amount = _to_number(budget.get(key))
            if amount is not None and amount > 0:
                break
        if amount is None or amount <= 0:
            return rules['no_budget'], 'No budget amounts specified'

        price = self.reference_unit_price
        if amount >= price:
            raw, reasoning = rules['exact_match'], 'Budget covers reference unit price'
        else:
            deviation = (price - amount) / price
            if deviation <= 0.10:
                raw, reasoning = rules['within_10_percent'], 'Budget within 10% of unit price'
            elif deviation <= 0.20:
                raw, reasoning = rules['within_20_percent'], 'Budget within 20% of unit price'
            elif deviation <= 0.30:
                raw, reasoning = rules['within_30_percent'], 'Budget within 30% of unit price'
            else:
                raw, reasoning = rules['below_30_percent'], 'Budget significantly below unit price'

        if _budget_is_validated(budget):
            raw = min(100, raw + rules['validated_bonus'])
            reasoning += ' (validated)'
        return raw, reasoning

    def _engagement_level(self, snapshot, summary, rules):
        count = summary.recent_count
        if count >= 5:
            raw, reasoning = rules['high_engagement'], f"High engagement: {count} interactions"
        elif count >= 3:
            raw, reasoning = rules['medium_engagement'], f"Medium engagement: {count} interactions"
        elif count >= 1:
            raw, reasoning = rules['low_engagement'], f"Low engagement: {count} interactions"
        else:
            return rules['no_engagement'], 'No recent interactions'
        if float(snapshot.response_rate) >= 0.5:
            raw = min(100, raw + rules['responsive_bonus'])
            reasoning += ', responsive'
        return raw, reasoning

    def _timeline_urgency(self, snapshot, summary, rules):
        requirements = snapshot.requirements if isinstance(snapshot.requirements, dict) else {}
        timeline = requirements.get('timeline')
        if not timeline:
            return rules['no_timeline'], 'No timeline specified'
        value = str(timeline).lower()
        if 'immediate' in value:
            return rules['immediate'], 'Immediate purchase intent'
        if '1-3' in value:
            return rules['within_3_months'], 'Short-term timeline (1-3 months)'
        if '3-6' in value:
            return rules['within_6_months'], 'Medium-term timeline (3-6 months)'
        if '6-12' in value:
            return rules['within_12_months'], 'Long-term timeline (6-12 months)'
        return rules['long_term'], 'Very long-term timeline'

    def _source_quality(self, snapshot, summary, rules):
        source = snapshot.source or 'Other'
        key = str(source).lower().replace('-', '').replace(' ', '')
        if 'referral' in key:
            raw = rules['referral']
        elif 'walkin' in key:
            raw = rules['walk_in']
        elif 'website' in key:
            raw = rules['website']
        elif 'portal' in key or 'property' in key:
            raw = rules['property_portal']
        elif 'social' in key:
            raw = rules['social_media']
        elif 'advertisement' in key:
            raw = rules['advertisement']
        elif 'cold' in key or 'call' in key:
            raw = rules['cold_call']
        else:
            raw = rules['other']
        return raw, f"Source: {source}"

    def _recency_factor(self, snapshot, summary, rules):
        reference = summary.last_interaction_at or snapshot.last_interaction_date or snapshot.created_at
        if reference is None:
            return rules['older'], 'No activity date available'
        age_days = max(0.0, (snapshot.as_of - reference).total_seconds() / 86400)
        if age_days <= 1:
            return rules['within_24_hours'], 'Activity within 24 hours'
        if age_days <= 7:
            return rules['within_7_days'], 'Activity within 7 days'
        if age_days <= 30:
            return rules['within_30_days'], 'Activity within 30 days'
        if age_days <= 90:
            return rules['within_90_days'], 'Activity within 90 days'
        return rules['older'], 'No activity for 90+ days'

    def _adjustments(self, snapshot):
        config = self.config['adjustments']
        adjustments = {
            'status': config['status'].get(snapshot.status, 0),
            'qualification_status': config['qualification_status'].get(snapshot.qualification_status, 0),
            'assigned': config['assigned'] if snapshot.has_assignee else 0,
        }
        return {key: value for key, value in adjustments.items() if value}

    def _confidence(self, snapshot, summary):
        present = set()
        budget = snapshot.budget if isinstance(snapshot.budget, dict) else {}
        if any((_to_number(budget.get(key)) or 0) > 0 for key in ('amount', 'min', 'max')):
            present.add('budget_amount')
            if _budget_is_validated(budget):
                present.add('budget_validated')
        requirements = snapshot.requirements if isinstance(snapshot.requirements, dict) else {}
        if requirements.get('timeline'):
            present.add('timeline')
        if any(value for key, value in requirements.items() if key != 'timeline'):
            present.add('requirement_details')
        if snapshot.source and snapshot.source != 'Other':
            present.add('source')
        if summary.total or snapshot.total_interactions:
            present.add('interactions')
        if snapshot.has_assignee:
            present.add('assignment')
        return sum(CONFIDENCE_WEIGHTS[key] for key in present)


def _budget_is_validated(budget: dict) -> bool:
    return budget.get('isValidated') is True or budget.get('source') in ('Pre-approved', 'Verified')


def get_score_policy() -> ScorePolicy:
    """Instantiate the policy configured in LEAD_SCORE_POLICY."""
    return import_string(settings.LEAD_SCORE_POLICY)()


def compute_score(snapshot: LeadSnapshot, summary: InteractionSummary,
                  policy: Optional[ScorePolicy] = None) -> ScoreResult:
    return (policy or get_score_policy()).compute(snapshot, summary)
