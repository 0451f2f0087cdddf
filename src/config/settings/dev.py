"""Development settings."""
from .base import *  # noqa: F401,F403

DEBUG = True

# Local memory cache so a Redis server is optional during development
CACHES = {
    "default": {
        "BACKEND": "django.core.cache.backends.locmem.LocMemCache",
    }
}

# Logging
LOGGING["root"]["level"] = "DEBUG"  # noqa: F405
