"""
Celery configuration for the sales CRM backend.
"""
import os
from celery import Celery

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'sales_crm.settings')

app = Celery('sales_crm')
app.config_from_object('django.conf:settings', namespace='CELERY')
app.autodiscover_tasks()
