"""
Django admin configuration for leads app.
"""
from django.contrib import admin
from leads.models import Interaction, Lead, ScoreHistory

# Written only by the score worker and the engagement accumulator
DERIVED_FIELDS = (
    'score', 'score_grade', 'priority', 'confidence', 'score_breakdown', 'last_score_update',
    'total_interactions', 'response_rate', 'avg_response_hours', 'engagement_trend',
    'last_interaction_date', 'last_interaction_type',
)


class InteractionInline(admin.TabularInline):
    """Inline display of a lead's interactions."""
    model = Interaction
    extra = 0
    fields = ('created_at', 'type', 'direction', 'user', 'outcome', 'next_action', 'scheduled_at')
    readonly_fields = fields
    can_delete = False
    ordering = ('-created_at',)

    def has_add_permission(self, request, obj=None):
        return False


class ScoreHistoryInline(admin.TabularInline):
    model = ScoreHistory
    extra = 0
    fields = ('recorded_at', 'score', 'score_grade', 'priority', 'confidence')
    readonly_fields = fields
    can_delete = False

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(Lead)
class LeadAdmin(admin.ModelAdmin):
    """Admin interface for Lead model."""

    list_display = ('id', 'full_name', 'organization_id', 'status', 'score', 'score_grade', 'priority',
                    'next_follow_up_date', 'last_score_update')
    list_filter = ('status', 'score_grade', 'priority', 'source')
    search_fields = ('id', 'first_name', 'last_name', 'email', 'phone', 'organization_id')
    readonly_fields = ('id', 'created_at', 'updated_at') + DERIVED_FIELDS

    fieldsets = (
        ('Contact', {
            'fields': ('id', 'organization_id', 'project_id', 'first_name', 'last_name', 'email', 'phone')
        }),
        ('Pipeline', {
            'fields': ('status', 'qualification_status', 'source', 'assigned_to', 'budget', 'requirements')
        }),
        ('Score', {
            'fields': ('score', 'score_grade', 'priority', 'confidence', 'last_score_update', 'score_breakdown'),
        }),
        ('Engagement', {
            'fields': ('total_interactions', 'response_rate', 'avg_response_hours', 'engagement_trend',
                       'last_interaction_date', 'last_interaction_type'),
            'classes': ('collapse',)
        }),
        ('Follow-up', {
            'fields': ('next_follow_up_date', 'follow_up_type', 'follow_up_notes'),
        }),
        ('Timestamps', {
            'fields': ('created_at', 'updated_at'),
            'classes': ('collapse',)
        }),
    )

    inlines = [InteractionInline, ScoreHistoryInline]

    def has_add_permission(self, request):
        """Leads are created through the API so the first score gets queued."""
        return False


@admin.register(Interaction)
class InteractionAdmin(admin.ModelAdmin):
    """Interactions are immutable once recorded."""

    list_display = ('id', 'lead', 'type', 'direction', 'created_at')
    list_filter = ('type', 'direction', 'created_at')
    search_fields = ('lead__id', 'content')
    readonly_fields = ('lead', 'organization_id', 'user', 'type', 'direction', 'content', 'outcome',
                       'next_action', 'scheduled_at', 'created_at')

    def has_add_permission(self, request):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
