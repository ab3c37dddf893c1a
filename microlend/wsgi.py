"""
WSGI config for the MicroLend marketplace.
"""

import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'microlend.settings')

application = get_wsgi_application()
