"""WSGI entry point for the lingomeet project."""

import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'lingomeet.settings')

application = get_wsgi_application()
