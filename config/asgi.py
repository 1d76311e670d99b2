"""ASGI config for Dokkerr.

This module exposes the ASGI application used by async-capable servers
(uvicorn, daphne) alongside the traditional WSGI interface.
"""

import os
from django.core.asgi import get_asgi_application  # type: ignore

# Use the development settings by default. Production servers should set
# DJANGO_SETTINGS_MODULE accordingly.
os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'config.settings.dev')

application = get_asgi_application()
