"""Development settings for Dokkerr.

This module extends the base settings with development specific
configuration, such as enabling debug, allowing all hosts, human readable
logs and using console email backend. Do not use these settings in
production!
"""

from .base import *  # noqa: F401,F403

# Enable debug mode for development
DEBUG = True

# Allow all hosts in development
ALLOWED_HOSTS = ['*']

# Use console email backend during development
EMAIL_BACKEND = 'django.core.mail.backends.console.EmailBackend'

# Local memory cache unless Redis is explicitly configured
if not os.environ.get('REDIS_URL'):
    CACHES = {
        'default': {
            'BACKEND': 'django.core.cache.backends.locmem.LocMemCache',
        }
    }

LOGGING["handlers"]["console"]["formatter"] = "console"
