"""
Data models for the sales CRM lead scoring pipeline.
"""
from django.conf import settings
from django.db import models


class Lead(models.Model):
    """
    A prospective customer tracked through the sales funnel.

    Mutable facts are written by request handlers. Derived scoring fields
    (score, grade, priority, confidence, breakdown) are written only by the
    score recalculation worker, with field-level updates.
    """

    class Status(models.TextChoices):
        NEW = 'New', 'New'
        CONTACTED = 'Contacted', 'Contacted'
        QUALIFIED = 'Qualified', 'Qualified'
        SITE_VISIT_SCHEDULED = 'Site Visit Scheduled', 'Site Visit Scheduled'
        SITE_VISIT_COMPLETED = 'Site Visit Completed', 'Site Visit Completed'
        NEGOTIATING = 'Negotiating', 'Negotiating'
        BOOKED = 'Booked', 'Booked'
        LOST = 'Lost', 'Lost'
        UNQUALIFIED = 'Unqualified', 'Unqualified'

    class QualificationStatus(models.TextChoices):
        NOT_QUALIFIED = 'Not Qualified', 'Not Qualified'
        PARTIALLY_QUALIFIED = 'Partially Qualified', 'Partially Qualified'
        FULLY_QUALIFIED = 'Fully Qualified', 'Fully Qualified'
        DISQUALIFIED = 'Disqualified', 'Disqualified'

    class Source(models.TextChoices):
        WEBSITE = 'Website', 'Website'
        PROPERTY_PORTAL = 'Property Portal', 'Property Portal'
        REFERRAL = 'Referral', 'Referral'
        WALK_IN = 'Walk-in', 'Walk-in'
        SOCIAL_MEDIA = 'Social Media', 'Social Media'
        ADVERTISEMENT = 'Advertisement', 'Advertisement'
        COLD_CALL = 'Cold Call', 'Cold Call'
        OTHER = 'Other', 'Other'

    class Grade(models.TextChoices):
        A = 'A', 'A'
        B = 'B', 'B'
        C = 'C', 'C'
        D = 'D', 'D'

    class Priority(models.TextChoices):
        VERY_LOW = 'Very Low', 'Very Low'
        LOW = 'Low', 'Low'
        MEDIUM = 'Medium', 'Medium'
        HIGH = 'High', 'High'
        CRITICAL = 'Critical', 'Critical'

    class EngagementTrend(models.TextChoices):
        INCREASING = 'Increasing', 'Increasing'
        STABLE = 'Stable', 'Stable'
        DECREASING = 'Decreasing', 'Decreasing'
        NO_DATA = 'No Data', 'No Data'

    CLOSED_STATUSES = (Status.BOOKED, Status.LOST, Status.UNQUALIFIED)

    organization_id = models.CharField(max_length=64, db_index=True)
    project_id = models.CharField(max_length=64, null=True, blank=True)
    assigned_to = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='assigned_leads'
    )

    first_name = models.CharField(max_length=100)
    last_name = models.CharField(max_length=100, blank=True, default='')
    email = models.EmailField(blank=True, default='')
    phone = models.CharField(max_length=32)

    source = models.CharField(max_length=32, choices=Source.choices, default=Source.OTHER)
    status = models.CharField(max_length=32, choices=Status.choices, default=Status.NEW, db_index=True)
    qualification_status = models.CharField(
        max_length=32,
        choices=QualificationStatus.choices,
        default=QualificationStatus.NOT_QUALIFIED
    )
    budget = models.JSONField(null=True, blank=True)
    requirements = models.JSONField(default=dict, blank=True)

    # Derived scoring state
    score = models.PositiveSmallIntegerField(default=0)
    score_grade = models.CharField(max_length=1, choices=Grade.choices, default=Grade.D)
    priority = models.CharField(max_length=16, choices=Priority.choices, default=Priority.VERY_LOW)
    confidence = models.PositiveSmallIntegerField(default=0)
    score_breakdown = models.JSONField(default=dict, blank=True)
    last_score_update = models.DateTimeField(null=True, blank=True, db_index=True)

    # Engagement metrics
    total_interactions = models.PositiveIntegerField(default=0)
    response_rate = models.FloatField(default=0.0)
    avg_response_hours = models.FloatField(null=True, blank=True)
    engagement_trend = models.CharField(
        max_length=16,
        choices=EngagementTrend.choices,
        default=EngagementTrend.NO_DATA
    )
    last_interaction_date = models.DateTimeField(null=True, blank=True)
    last_interaction_type = models.CharField(max_length=32, blank=True, default='')

    # Follow-up schedule; overdue state is derived at read time
    next_follow_up_date = models.DateTimeField(null=True, blank=True, db_index=True)
    follow_up_type = models.CharField(max_length=32, blank=True, default='')
    follow_up_notes = models.TextField(blank=True, default='')

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['organization_id', 'score'], name='lead_org_score_idx'),
            models.Index(fields=['organization_id', 'priority'], name='lead_org_priority_idx'),
        ]

    def __str__(self):
        return f"Lead {self.id} - {self.full_name} ({self.score}/{self.score_grade})"

    @property
    def full_name(self):
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def engagement_metrics(self):
        return {
            'totalInteractions': self.total_interactions,
            'responseRate': self.response_rate,
            'avgResponseHours': self.avg_response_hours,
            'engagementTrend': self.engagement_trend,
            'lastInteractionDate': self.last_interaction_date,
            'lastInteractionType': self.last_interaction_type,
        }


class Interaction(models.Model):
    """
    Immutable log entry of a contact with a lead.
    Created only through leads.services.engagement.record_interaction.
    """

    class Type(models.TextChoices):
        CALL = 'Call', 'Call'
        EMAIL = 'Email', 'Email'
        SMS = 'SMS', 'SMS'
        MEETING = 'Meeting', 'Meeting'
        SITE_VISIT = 'Site Visit', 'Site Visit'
        WHATSAPP = 'WhatsApp', 'WhatsApp'
        NOTE = 'Note', 'Note'

    class Direction(models.TextChoices):
        INBOUND = 'Inbound', 'Inbound'
        OUTBOUND = 'Outbound', 'Outbound'

    lead = models.ForeignKey(Lead, on_delete=models.CASCADE, related_name='interactions')
    organization_id = models.CharField(max_length=64, db_index=True)
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='lead_interactions'
    )
    type = models.CharField(max_length=32, choices=Type.choices)
    direction = models.CharField(max_length=16, choices=Direction.choices, blank=True, default='')
    content = models.TextField()
    outcome = models.CharField(max_length=255, blank=True, default='')
    next_action = models.CharField(max_length=255, blank=True, default='')
    scheduled_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)

    class Meta:
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['lead', 'created_at'], name='interaction_lead_created_idx'),
        ]

    def __str__(self):
        return f"{self.type} for Lead {self.lead_id}"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ValueError("Interactions are immutable once recorded")
        super().save(*args, **kwargs)


class ScoreHistory(models.Model):
    """
    Audit trail of derived score changes.
    A row is written only when a recalculation changes the derived values.
    """

    lead = models.ForeignKey(Lead, on_delete=models.CASCADE, related_name='score_history')
    score = models.PositiveSmallIntegerField()
    score_grade = models.CharField(max_length=1, choices=Lead.Grade.choices)
    priority = models.CharField(max_length=16, choices=Lead.Priority.choices)
    confidence = models.PositiveSmallIntegerField()
    breakdown = models.JSONField(default=dict, blank=True)
    recorded_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-recorded_at', '-id']
        verbose_name_plural = 'score history'
        indexes = [
            models.Index(fields=['lead', 'recorded_at'], name='score_history_lead_idx'),
        ]

    def __str__(self):
        return f"Lead {self.lead_id}: {self.score} ({self.score_grade}) at {self.recorded_at}"
