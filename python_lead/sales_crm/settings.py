"""
Django settings for sales_crm project.
"""
import os
import sys
from pathlib import Path
from celery.schedules import crontab
from dotenv import load_dotenv

load_dotenv()

BASE_DIR = Path(__file__).resolve().parent.parent

SECRET_KEY = os.getenv('DJANGO_SECRET_KEY', 'dev-secret-key-change-in-production')
DEBUG = os.getenv('DEBUG', 'True').lower() == 'true'
ALLOWED_HOSTS = os.getenv('ALLOWED_HOSTS', 'localhost,127.0.0.1').split(',')

INSTALLED_APPS = [
    'django.contrib.admin',
    'django.contrib.auth',
    'django.contrib.contenttypes',
    'django.contrib.sessions',
    'django.contrib.messages',
    'django.contrib.staticfiles',
    'rest_framework',
    'leads',
]

MIDDLEWARE = [
    'django.middleware.security.SecurityMiddleware',
    'django.contrib.sessions.middleware.SessionMiddleware',
    'django.middleware.common.CommonMiddleware',
    'django.middleware.csrf.CsrfViewMiddleware',
    'django.contrib.auth.middleware.AuthenticationMiddleware',
    'django.contrib.messages.middleware.MessageMiddleware',
    'django.middleware.clickjacking.XFrameOptionsMiddleware',
]

ROOT_URLCONF = 'sales_crm.urls'

TEMPLATES = [
    {
        'BACKEND': 'django.template.backends.django.DjangoTemplates',
        'DIRS': [],
        'APP_DIRS': True,
        'OPTIONS': {
            'context_processors': [
                'django.template.context_processors.debug',
                'django.template.context_processors.request',
                'django.contrib.auth.context_processors.auth',
                'django.contrib.messages.context_processors.messages',
            ],
        },
    },
]

WSGI_APPLICATION = 'sales_crm.wsgi.application'

# Database configuration
DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.postgresql',
        'NAME': os.getenv('DB_NAME', 'sales_crm'),
        'USER': os.getenv('DB_USER', 'postgres'),
        'PASSWORD': os.getenv('DB_PASSWORD', 'postgres'),
        'HOST': os.getenv('DB_HOST', 'localhost'),
        'PORT': os.getenv('DB_PORT', '5432'),
    }
}

# Use SQLite for tests to avoid requiring a running PostgreSQL server
TESTING = (
    os.getenv('USE_SQLITE_FOR_TESTS', '').lower() == 'true'
    or any('pytest' in arg for arg in sys.argv)
    or 'pytest' in sys.modules
    or bool(os.getenv('PYTEST_CURRENT_TEST'))
)
if TESTING:
    DATABASES = {
        'default': {
            'ENGINE': 'django.db.backends.sqlite3',
            'NAME': os.getenv('SQLITE_NAME', ':memory:'),
        }
    }

AUTH_PASSWORD_VALIDATORS = [
    {'NAME': 'django.contrib.auth.password_validation.UserAttributeSimilarityValidator'},
    {'NAME': 'django.contrib.auth.password_validation.MinimumLengthValidator'},
    {'NAME': 'django.contrib.auth.password_validation.CommonPasswordValidator'},
    {'NAME': 'django.contrib.auth.password_validation.NumericPasswordValidator'},
]

LANGUAGE_CODE = 'en-us'
TIME_ZONE = 'UTC'
USE_I18N = True
USE_TZ = True

STATIC_URL = 'static/'
DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

# Celery configuration
CELERY_BROKER_URL = os.getenv('CELERY_BROKER_URL', 'redis://localhost:6379/0')
CELERY_RESULT_BACKEND = os.getenv('CELERY_RESULT_BACKEND', 'redis://localhost:6379/0')
CELERY_ACCEPT_CONTENT = ['json']
CELERY_TASK_SERIALIZER = 'json'
CELERY_RESULT_SERIALIZER = 'json'
# Redelivered jobs are harmless, lost ones are not
CELERY_TASK_ACKS_LATE = True
CELERY_TASK_REJECT_ON_WORKER_LOST = True
CELERY_WORKER_PREFETCH_MULTIPLIER = 1
CELERY_BEAT_SCHEDULE = {
    'reconcile-stale-lead-scores': {
        'task': 'leads.tasks.reconcile_stale_scores',
        'schedule': crontab(minute=0, hour='*/6'),
    },
}

if TESTING:
    CELERY_BROKER_URL = 'memory://'
    CELERY_RESULT_BACKEND = 'cache+memory://'

# Lead scoring pipeline
# InMemoryScoreQueue has no worker draining it and is refused outside test runs
LEAD_SCORE_QUEUE_BACKEND = os.getenv(
    'LEAD_SCORE_QUEUE_BACKEND',
    'leads.services.queue.InMemoryScoreQueue' if TESTING else 'leads.services.queue.CeleryScoreQueue'
)
LEAD_SCORE_POLICY = os.getenv('LEAD_SCORE_POLICY', 'leads.services.scoring.DefaultScorePolicy')

# Milliseconds between a mutation and the recalculation it triggers
LEAD_SCORE_DELAYS = {
    'create': int(os.getenv('LEAD_SCORE_DELAY_CREATE_MS', '2000')),
    'update': int(os.getenv('LEAD_SCORE_DELAY_UPDATE_MS', '1000')),
    'interaction': int(os.getenv('LEAD_SCORE_DELAY_INTERACTION_MS', '2000')),
    'assignment': int(os.getenv('LEAD_SCORE_DELAY_ASSIGNMENT_MS', '1000')),
    'bulk_max': int(os.getenv('LEAD_SCORE_DELAY_BULK_MAX_MS', '5000')),
    # Added to the time until a scheduled follow-up falls due
    'follow_up_margin': int(os.getenv('LEAD_SCORE_DELAY_FOLLOW_UP_MARGIN_MS', '1000')),
}

# Overrides merged over leads.services.scoring.DEFAULT_SCORING_CONFIG
LEAD_SCORING_CONFIG = {}
LEAD_SCORING_REFERENCE_UNIT_PRICE = float(os.getenv('LEAD_SCORING_REFERENCE_UNIT_PRICE', '1000000'))

LEAD_RESPONSE_WINDOW_HOURS = int(os.getenv('LEAD_RESPONSE_WINDOW_HOURS', '48'))
LEAD_ENGAGEMENT_SAMPLE_SIZE = int(os.getenv('LEAD_ENGAGEMENT_SAMPLE_SIZE', '100'))
LEAD_SCORE_LOOKBACK_DAYS = int(os.getenv('LEAD_SCORE_LOOKBACK_DAYS', '90'))
LEAD_SCORE_INTERACTION_LIMIT = int(os.getenv('LEAD_SCORE_INTERACTION_LIMIT', '50'))
LEAD_SCORE_HISTORY_LIMIT = int(os.getenv('LEAD_SCORE_HISTORY_LIMIT', '50'))
LEAD_STALE_SCORE_DAYS = int(os.getenv('LEAD_STALE_SCORE_DAYS', '7'))
LEAD_STALE_SCORE_BATCH = int(os.getenv('LEAD_STALE_SCORE_BATCH', '100'))
LEAD_BULK_RECALCULATE_LIMIT = int(os.getenv('LEAD_BULK_RECALCULATE_LIMIT', '1000'))

# Logging configuration
LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'verbose': {
            'format': '{levelname} {asctime} {module} {message}',
            'style': '{',
        },
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'verbose',
        },
    },
    'root': {
        'handlers': ['console'],
        'level': 'INFO',
    },
    'loggers': {
        'leads': {
            'handlers': ['console'],
            'level': 'DEBUG',
            'propagate': False,
        },
    },
}

# REST Framework configuration
REST_FRAMEWORK = {
    'DEFAULT_RENDERER_CLASSES': [
        'rest_framework.renderers.JSONRenderer',
    ],
    'DEFAULT_PARSER_CLASSES': [
        'rest_framework.parsers.JSONParser',
    ],
}
