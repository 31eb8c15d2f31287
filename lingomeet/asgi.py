"""ASGI entry point for the lingomeet project (the views are async)."""

import os

from django.core.asgi import get_asgi_application

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'lingomeet.settings')

application = get_asgi_application()
