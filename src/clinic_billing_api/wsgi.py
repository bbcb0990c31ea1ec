import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

# o container de DI é montado em BillingConfig.ready()
application = get_wsgi_application()
