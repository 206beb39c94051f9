import os
from django.core.asgi import get_asgi_application

# Set the default Django settings module
os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'clubbilling.settings')

# Webhooks and the manual trigger are plain HTTP, no websocket routing needed.
application = get_asgi_application()
