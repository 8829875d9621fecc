"""
URL configuration for leads app.
"""
from django.urls import path
from leads import views

urlpatterns = [
    path('leads/', views.LeadListCreateView.as_view(), name='lead-create'),
    path('leads/bulk-update/', views.LeadBulkUpdateView.as_view(), name='lead-bulk-update'),
    path('leads/high-priority/', views.HighPriorityLeadsView.as_view(), name='lead-high-priority'),
    path('leads/follow-ups/overdue/', views.OverdueFollowUpsView.as_view(), name='lead-overdue-follow-ups'),
    path('leads/needs-attention/', views.LeadsNeedingAttentionView.as_view(), name='lead-needs-attention'),
    path('leads/scoring/config/', views.ScoringConfigView.as_view(), name='lead-scoring-config'),
    path('leads/score/bulk-recalculate/', views.BulkRecalculateView.as_view(), name='lead-score-bulk-recalculate'),
    path('leads/<int:lead_id>/', views.LeadDetailView.as_view(), name='lead-detail'),
    path('leads/<int:lead_id>/interactions/', views.LeadInteractionView.as_view(), name='lead-interactions'),
    path('leads/<int:lead_id>/assign/', views.LeadAssignView.as_view(), name='lead-assign'),
    path('leads/<int:lead_id>/score/', views.LeadScoreView.as_view(), name='lead-score'),
    path('leads/<int:lead_id>/score/recalculate/', views.LeadRecalculateView.as_view(), name='lead-score-recalculate'),
    path('leads/<int:lead_id>/score/history/', views.LeadScoreHistoryView.as_view(), name='lead-score-history'),
]
