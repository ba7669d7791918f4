"""
WSGI config for protex_wear project.
"""

import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "protex_wear.settings")

application = get_wsgi_application()
