"""
ASGI config for sales_crm project.
"""
import os
from django.core.asgi import get_asgi_application

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'sales_crm.settings')
application = get_asgi_application()
