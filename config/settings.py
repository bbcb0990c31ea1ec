from decimal import Decimal
from pathlib import Path

from decouple import Csv, config

from config.structlog_config import configure_logging

# -------------------------------
# Diretórios base
# -------------------------------
BASE_DIR = Path(__file__).resolve().parent.parent

# -------------------------------
# Segurança e debug
# -------------------------------
SECRET_KEY = config('SECRET_KEY', default='dev-insecure-billing-ledger-key')
DEBUG = config('DEBUG', default=False, cast=bool)
ALLOWED_HOSTS = config('ALLOWED_HOSTS', default='localhost,127.0.0.1,testserver', cast=Csv())

SESSION_COOKIE_SECURE = config('SESSION_COOKIE_SECURE', default=False, cast=bool)
CSRF_COOKIE_SECURE    = config('CSRF_COOKIE_SECURE', default=False, cast=bool)
CSRF_TRUSTED_ORIGINS  = config('CSRF_TRUSTED_ORIGINS', default='http://localhost:3001', cast=Csv())
SECURE_PROXY_SSL_HEADER = ('HTTP_X_FORWARDED_PROTO', 'https')

# -------------------------------
# Logging (structlog)
# -------------------------------
LOG_LEVEL = config('LOG_LEVEL', default='INFO')
JSON_LOGS = config('JSON_LOGS', default=False, cast=bool)
configure_logging(level=LOG_LEVEL, json_logs=JSON_LOGS)

# -------------------------------
# Celery
# -------------------------------
CELERY_BROKER_URL                 = config('CELERY_BROKER_URL', default='memory://')
CELERY_RESULT_BACKEND             = config('CELERY_RESULT_BACKEND', default=None)
CELERY_TASK_ACKS_LATE             = True
CELERY_TASK_REJECT_ON_WORKER_LOST = True
CELERY_WORKER_PREFETCH_MULTIPLIER = 1
CELERY_TASK_ALWAYS_EAGER          = config('CELERY_TASK_ALWAYS_EAGER', default=False, cast=bool)
CELERY_ACCEPT_CONTENT             = ["json"]
CELERY_TASK_SERIALIZER            = "json"
CELERY_TASK_QUEUES = {
    "default":     {"exchange": "default",     "routing_key": "default"},
    "dead_letter": {"exchange": "dead_letter", "routing_key": "dead_letter"},
    "billing":     {"exchange": "billing",     "routing_key": "billing"},
}
CELERY_TASK_DEFAULT_QUEUE = 'default'
CELERY_TASK_DEFAULT_EXCHANGE = 'default'
CELERY_TASK_DEFAULT_ROUTING_KEY = 'default'
CELERY_TASK_ROUTES = {
    "clinic_billing_api.tasks.rebalance_account_task": {"queue": "billing"},
    "clinic_billing_api.tasks.confirm_gateway_event_task": {"queue": "billing"},
}

# -------------------------------
# Billing
# -------------------------------
BILLING_CURRENCY          = config('BILLING_CURRENCY', default='brl')
REFUND_APPROVAL_THRESHOLD = config('REFUND_APPROVAL_THRESHOLD', default='500.00', cast=Decimal)

# -------------------------------
# Gateway de pagamentos
# -------------------------------
PAYMENT_GATEWAY_BASE_URL     = config('PAYMENT_GATEWAY_BASE_URL', default='https://api.stripe.com/v1')
PAYMENT_GATEWAY_API_KEY = config('PAYMENT_GATEWAY_API_KEY', default='')
PAYMENT_GATEWAY_TIMEOUT = config('PAYMENT_GATEWAY_TIMEOUT', default=10.0, cast=float)

# -------------------------------
# Apps, Middleware, URLs
# -------------------------------
INSTALLED_APPS = [
    'django.contrib.admin',
    'django.contrib.auth',
    'django.contrib.contenttypes',
    'django.contrib.sessions',
    'django.contrib.messages',
    'django.contrib.staticfiles',
    'rest_framework',
    'drf_yasg',
    'django_prometheus',
    'clinic_billing_api.apps.BillingConfig',
    'plugins.django_interface.apps.DjangoInterfaceConfig',
]

MIDDLEWARE = [
    'django_prometheus.middleware.PrometheusBeforeMiddleware',
    'django.middleware.security.SecurityMiddleware',
    'django.middleware.common.CommonMiddleware',
    'django.middleware.csrf.CsrfViewMiddleware',
    'django.contrib.sessions.middleware.SessionMiddleware',
    'django.contrib.auth.middleware.AuthenticationMiddleware',
    'django.contrib.messages.middleware.MessageMiddleware',
    'django_prometheus.middleware.PrometheusAfterMiddleware',
]

ROOT_URLCONF = 'clinic_billing_api.urls'
WSGI_APPLICATION = 'clinic_billing_api.wsgi.application'
ASGI_APPLICATION = 'clinic_billing_api.asgi.application'

# -------------------------------
# Templates
# -------------------------------
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

# -------------------------------
# REST Framework
# -------------------------------
REST_FRAMEWORK = {
    "DEFAULT_AUTHENTICATION_CLASSES": (),
    "DEFAULT_PERMISSION_CLASSES": (
        "plugins.django_interface.permissions.HasClinicHeader",
    ),
}
SWAGGER_SETTINGS = {
    'SECURITY_DEFINITIONS': {
        'ClinicId': {
            'type': 'apiKey', 'name': 'X-Clinic-Id', 'in': 'header'
        }
    },
}

# -------------------------------
# Banco de Dados
# -------------------------------
# sem DB_HOST cai para SQLite local (dev/testes)
if config('DB_HOST', default=''):
    DATABASES = {
        'default': {
            'ENGINE':   'django.db.backends.postgresql',
            'NAME':     config('DB_NAME'),
            'USER':     config('DB_USER'),
            'PASSWORD': config('DB_PASS'),
            'HOST':     config('DB_HOST'),
            'PORT':     config('DB_PORT', default='5432'),
        }
    }
else:
    DATABASES = {
        'default': {
            'ENGINE': 'django.db.backends.sqlite3',
            'NAME':   BASE_DIR / 'db.sqlite3',
        }
    }

# -------------------------------
# Internacionalização
# -------------------------------
LANGUAGE_CODE = 'pt-br'
TIME_ZONE     = 'America/Sao_Paulo'
USE_I18N      = True
USE_TZ        = True

# -------------------------------
# Arquivos estáticos
# -------------------------------
STATIC_URL = '/static/'
STATIC_ROOT = BASE_DIR / 'staticfiles'

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'
