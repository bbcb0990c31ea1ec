import os

from celery import Celery

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'config.settings')

app = Celery('clinic_billing_api')

# todas as chaves CELERY_* do settings.py
app.config_from_object('django.conf:settings', namespace='CELERY')
app.autodiscover_tasks()
