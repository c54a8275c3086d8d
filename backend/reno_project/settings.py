"""
Django settings for reno_project project.
"""

from pathlib import Path
from decouple import config

# Build paths inside the project like this: BASE_DIR / 'subdir'.
BASE_DIR = Path(__file__).resolve().parent.parent


# Quick-start development settings - unsuitable for production
# See https://docs.djangoproject.com/en/4.2/howto/deployment/checklist/

# SECURITY WARNING: keep the secret key used in production secret!
SECRET_KEY = config('SECRET_KEY', default='django-insecure-change-this-in-production')

# SECURITY WARNING: don't run with debug turned on in production!
DEBUG = config('DEBUG', default=True, cast=bool)

ALLOWED_HOSTS = config('ALLOWED_HOSTS', default='localhost,127.0.0.1', cast=lambda v: [s.strip() for s in v.split(',')])


# Application definition

INSTALLED_APPS = [
    'django.contrib.admin',
    'django.contrib.auth',
    'django.contrib.contenttypes',
    'django.contrib.sessions',
    'django.contrib.messages',
    'django.contrib.staticfiles',
    'rest_framework',
    'rest_framework_simplejwt',
    'django_filters',
    'properties',
    'crm',
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

ROOT_URLCONF = 'reno_project.urls'

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

WSGI_APPLICATION = 'reno_project.wsgi.application'


# Database
# https://docs.djangoproject.com/en/4.2/ref/settings/#databases

DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.postgresql',
        'NAME': config('DB_NAME', default='reno_db'),
        'USER': config('DB_USER', default='postgres'),
        'PASSWORD': config('DB_PASSWORD', default='postgres'),
        'HOST': config('DB_HOST', default='localhost'),
        'PORT': config('DB_PORT', default='5432'),
    }
}


# Password validation
# https://docs.djangoproject.com/en/4.2/ref/settings/#auth-password-validators

AUTH_PASSWORD_VALIDATORS = [
    {
        'NAME': 'django.contrib.auth.password_validation.UserAttributeSimilarityValidator',
    },
    {
        'NAME': 'django.contrib.auth.password_validation.MinimumLengthValidator',
    },
    {
        'NAME': 'django.contrib.auth.password_validation.CommonPasswordValidator',
    },
    {
        'NAME': 'django.contrib.auth.password_validation.NumericPasswordValidator',
    },
]


# Internationalization
# https://docs.djangoproject.com/en/4.2/topics/i18n/

LANGUAGE_CODE = 'en-us'

TIME_ZONE = 'UTC'

USE_I18N = True

USE_TZ = True


# Static files (CSS, JavaScript, Images)
# https://docs.djangoproject.com/en/4.2/howto/static-files/

STATIC_URL = 'static/'
STATIC_ROOT = BASE_DIR / 'staticfiles'

# Default primary key field type
# https://docs.djangoproject.com/en/4.2/ref/settings/#default-auto-field

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

# REST Framework settings
REST_FRAMEWORK = {
    'DEFAULT_AUTHENTICATION_CLASSES': (
        'rest_framework_simplejwt.authentication.JWTAuthentication',
        'rest_framework.authentication.SessionAuthentication',
    ),
    'DEFAULT_PERMISSION_CLASSES': (
        'rest_framework.permissions.IsAdminUser',
    ),
    'DEFAULT_PAGINATION_CLASS': 'rest_framework.pagination.PageNumberPagination',
    'PAGE_SIZE': 50,
    'DEFAULT_FILTER_BACKENDS': [
        'django_filters.rest_framework.DjangoFilterBackend',
        'rest_framework.filters.SearchFilter',
        'rest_framework.filters.OrderingFilter',
    ],
}

# JWT Settings
from datetime import timedelta

SIMPLE_JWT = {
    'ACCESS_TOKEN_LIFETIME': timedelta(hours=24),
    'REFRESH_TOKEN_LIFETIME': timedelta(days=7),
    'ROTATE_REFRESH_TOKENS': True,
}

# Airtable (source CRM) Settings
AIRTABLE_API_URL = config('AIRTABLE_API_URL', default='https://api.airtable.com/v0')
AIRTABLE_API_KEY = config('AIRTABLE_API_KEY', default='')
AIRTABLE_BASE_ID = config('AIRTABLE_BASE_ID', default='')
AIRTABLE_PROPERTIES_TABLE = config('AIRTABLE_PROPERTIES_TABLE', default='tblmX19OTsj3cTHmA')
AIRTABLE_TIMEOUT = config('AIRTABLE_TIMEOUT', default=30, cast=int)
AIRTABLE_PAGE_SIZE = config('AIRTABLE_PAGE_SIZE', default=100, cast=int)
AIRTABLE_MAX_RETRIES = config('AIRTABLE_MAX_RETRIES', default=3, cast=int)

# View IDs per phase-tagged view. Keys match crm.phases.SOURCE_VIEWS.
AIRTABLE_VIEW_IDS = {
    'cleaning': config('AIRTABLE_VIEW_CLEANING', default='viwLajczYxzQd4UvU'),
    'final-check': config('AIRTABLE_VIEW_FINAL_CHECK', default='viwnDG5TY6wjZhBL2'),
    'furnishing': config('AIRTABLE_VIEW_FURNISHING', default='viw9NDUaeGIQDvugU'),
    'in-progress': config('AIRTABLE_VIEW_IN_PROGRESS', default='viwQUOrLzUrScuU4k'),
    'budget': config('AIRTABLE_VIEW_BUDGET', default='viwKS3iOiyX5iu5zP'),
    'initial-check': config('AIRTABLE_VIEW_INITIAL_CHECK', default='viwFZZ5S3VFCfYP6g'),
    'upcoming-settlement': config('AIRTABLE_VIEW_UPCOMING_SETTLEMENT', default='viwpYQ0hsSSdFrSD1'),
}

# Sync engine
CRM_SYNC_MAX_WORKERS = config('CRM_SYNC_MAX_WORKERS', default=4, cast=int)
CRM_SYNC_STALE_MINUTES = config('CRM_SYNC_STALE_MINUTES', default=120, cast=int)
CRM_ORPHAN_ABSENT = config('CRM_ORPHAN_ABSENT', default=True, cast=bool)
CRM_TRIGGER_EXTRACTION_AFTER_SYNC = config('CRM_TRIGGER_EXTRACTION_AFTER_SYNC', default=True, cast=bool)

# Automation service (category extraction webhook)
AUTOMATION_WEBHOOK_URL = config('AUTOMATION_WEBHOOK_URL', default='')
AUTOMATION_WEBHOOK_TIMEOUT = config('AUTOMATION_WEBHOOK_TIMEOUT', default=30, cast=int)
AUTOMATION_WEBHOOK_DELAY = config('AUTOMATION_WEBHOOK_DELAY', default=0.5, cast=float)
BUDGET_INDEX_RECONCILE_DELAY = config('BUDGET_INDEX_RECONCILE_DELAY', default=10, cast=int)

# Celery Configuration
CELERY_BROKER_URL = config('CELERY_BROKER_URL', default='redis://localhost:6379/0')
CELERY_RESULT_BACKEND = config('CELERY_RESULT_BACKEND', default='redis://localhost:6379/0')
CELERY_ACCEPT_CONTENT = ['json']
CELERY_TASK_SERIALIZER = 'json'
CELERY_RESULT_SERIALIZER = 'json'
CELERY_TIMEZONE = TIME_ZONE
CELERY_TASK_ALWAYS_EAGER = config('CELERY_TASK_ALWAYS_EAGER', default=True, cast=bool)
CELERY_TASK_EAGER_PROPAGATES = config('CELERY_TASK_EAGER_PROPAGATES', default=True, cast=bool)

# Celery Beat Schedule (Periodic Tasks)
from celery.schedules import crontab
CELERY_BEAT_SCHEDULE = {
    'sync-crm-views-hourly': {
        'task': 'crm.tasks.sync_crm_task',
        'schedule': crontab(minute=0),  # Run every hour at minute 0
    },
    'trigger-category-extraction': {
        'task': 'crm.tasks.trigger_extraction_task',
        'schedule': crontab(minute='*/30'),
    },
}

# Logging Configuration
LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'verbose': {
            'format': '{levelname} {asctime} {module} {message}',
            'style': '{',
        },
        'simple': {
            'format': '{levelname} {message}',
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
        'crm': {
            'handlers': ['console'],
            'level': 'INFO',
            'propagate': False,
        },
        'django': {
            'handlers': ['console'],
            'level': 'INFO',
            'propagate': False,
        },
    },
}
