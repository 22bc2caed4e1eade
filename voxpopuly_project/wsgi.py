"""
WSGI config for VoxPopuly
=========================

Exposes the WSGI callable as a module-level variable named ``application``.
Used by Gunicorn / mod_wsgi deployments.
"""

import os
from django.core.wsgi import get_wsgi_application

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'voxpopuly_project.settings')

application = get_wsgi_application()
