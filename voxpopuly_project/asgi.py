"""
ASGI config for VoxPopuly
=========================

Exposes the ASGI callable as a module-level variable named ``application``.
Can be served with Uvicorn, Daphne or Hypercorn.
"""

import os
from django.core.asgi import get_asgi_application # pyright: ignore[reportMissingModuleSource]

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'voxpopuly_project.settings')

application = get_asgi_application()
