# Generated migration for Lead, Interaction and ScoreHistory models

from django.conf import settings
from django.db import migrations, models
import django.db.models.deletion


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='Lead',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('organization_id', models.CharField(db_index=True, max_length=64)),
                ('project_id', models.CharField(blank=True, max_length=64, null=True)),
                ('first_name', models.CharField(max_length=100)),
                ('last_name', models.CharField(blank=True, default='', max_length=100)),
                ('email', models.EmailField(blank=True, default='', max_length=254)),
                ('phone', models.CharField(max_length=32)),
                ('source', models.CharField(choices=[('Website', 'Website'), ('Property Portal', 'Property Portal'), ('Referral', 'Referral'), ('Walk-in', 'Walk-in'), ('Social Media', 'Social Media'), ('Advertisement', 'Advertisement'), ('Cold Call', 'Cold Call'), ('Other', 'Other')], default='Other', max_length=32)),
                ('status', models.CharField(choices=[('New', 'New'), ('Contacted', 'Contacted'), ('Qualified', 'Qualified'), ('Site Visit Scheduled', 'Site Visit Scheduled'), ('Site Visit Completed', 'Site Visit Completed'), ('Negotiating', 'Negotiating'), ('Booked', 'Booked'), ('Lost', 'Lost'), ('Unqualified', 'Unqualified')], db_index=True, default='New', max_length=32)),
                ('qualification_status', models.CharField(choices=[('Not Qualified', 'Not Qualified'), ('Partially Qualified', 'Partially Qualified'), ('Fully Qualified', 'Fully Qualified'), ('Disqualified', 'Disqualified')], default='Not Qualified', max_length=32)),
                ('budget', models.JSONField(blank=True, null=True)),
                ('requirements', models.JSONField(blank=True, default=dict)),
                ('score', models.PositiveSmallIntegerField(default=0)),
                ('score_grade', models.CharField(choices=[('A', 'A'), ('B', 'B'), ('C', 'C'), ('D', 'D')], default='D', max_length=1)),
                ('priority', models.CharField(choices=[('Very Low', 'Very Low'), ('Low', 'Low'), ('Medium', 'Medium'), ('High', 'High'), ('Critical', 'Critical')], default='Very Low', max_length=16)),
                ('confidence', models.PositiveSmallIntegerField(default=0)),
                ('score_breakdown', models.JSONField(blank=True, default=dict)),
                ('last_score_update', models.DateTimeField(blank=True, db_index=True, null=True)),
                ('total_interactions', models.PositiveIntegerField(default=0)),
                ('response_rate', models.FloatField(default=0.0)),
                ('avg_response_hours', models.FloatField(blank=True, null=True)),
                ('engagement_trend', models.CharField(choices=[('Increasing', 'Increasing'), ('Stable', 'Stable'), ('Decreasing', 'Decreasing'), ('No Data', 'No Data')], default='No Data', max_length=16)),
                ('last_interaction_date', models.DateTimeField(blank=True, null=True)),
                ('last_interaction_type', models.CharField(blank=True, default='', max_length=32)),
                ('next_follow_up_date', models.DateTimeField(blank=True, db_index=True, null=True)),
                ('follow_up_type', models.CharField(blank=True, default='', max_length=32)),
                ('follow_up_notes', models.TextField(blank=True, default='')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('assigned_to', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='assigned_leads', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['organization_id', 'score'], name='lead_org_score_idx'),
                    models.Index(fields=['organization_id', 'priority'], name='lead_org_priority_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='Interaction',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('organization_id', models.CharField(db_index=True, max_length=64)),
                ('type', models.CharField(choices=[('Call', 'Call'), ('Email', 'Email'), ('SMS', 'SMS'), ('Meeting', 'Meeting'), ('Site Visit', 'Site Visit'), ('WhatsApp', 'WhatsApp'), ('Note', 'Note')], max_length=32)),
                ('direction', models.CharField(blank=True, choices=[('Inbound', 'Inbound'), ('Outbound', 'Outbound')], default='', max_length=16)),
                ('content', models.TextField()),
                ('outcome', models.CharField(blank=True, default='', max_length=255)),
                ('next_action', models.CharField(blank=True, default='', max_length=255)),
                ('scheduled_at', models.DateTimeField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True, db_index=True)),
                ('lead', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='interactions', to='leads.lead')),
                ('user', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='lead_interactions', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['lead', 'created_at'], name='interaction_lead_created_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='ScoreHistory',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('score', models.PositiveSmallIntegerField()),
                ('score_grade', models.CharField(choices=[('A', 'A'), ('B', 'B'), ('C', 'C'), ('D', 'D')], max_length=1)),
                ('priority', models.CharField(choices=[('Very Low', 'Very Low'), ('Low', 'Low'), ('Medium', 'Medium'), ('High', 'High'), ('Critical', 'Critical')], max_length=16)),
                ('confidence', models.PositiveSmallIntegerField()),
                ('breakdown', models.JSONField(blank=True, default=dict)),
                ('recorded_at', models.DateTimeField(auto_now_add=True)),
                ('lead', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='score_history', to='leads.lead')),
            ],
            options={
                'verbose_name_plural': 'score history',
                'ordering': ['-recorded_at', '-id'],
                'indexes': [
                    models.Index(fields=['lead', 'recorded_at'], name='score_history_lead_idx'),
                ],
            },
        ),
    ]
