"""
With these settings, tests run faster.
"""

from .base import *  # noqa: F403
from .base import LOGGING
from .base import env

# GENERAL
# ------------------------------------------------------------------------------
# https://docs.djangoproject.com/en/dev/ref/settings/#secret-key
SECRET_KEY = env(
    "DJANGO_SECRET_KEY",
    default="Xq3vN8bR1tLw6ZkP0yHcJ5sEoU2mGfAa9dVrTn4iKzWb7QeYlCpMxSjDhBu",
)
# https://docs.djangoproject.com/en/dev/ref/settings/#test-runner
TEST_RUNNER = "django.test.runner.DiscoverRunner"

# DATABASES
# ------------------------------------------------------------------------------
DATABASES = {"default": {"ENGINE": "django.db.backends.sqlite3", "NAME": ":memory:"}}

# PASSWORDS
# ------------------------------------------------------------------------------
# https://docs.djangoproject.com/en/dev/ref/settings/#password-hashers
PASSWORD_HASHERS = ["django.contrib.auth.hashers.MD5PasswordHasher"]

# Your stuff...
# ------------------------------------------------------------------------------
# No Redis in tests: the socket server keeps its in-process manager.
REDIS_URL = ""
REALTIME_CORS_ALLOWED_ORIGINS = "*"
REALTIME_MEMBERSHIP_LOOKUP = "courtbook.realtime.access.no_memberships"
LOGGING["loggers"]["courtbook"]["level"] = "DEBUG"  # type: ignore[index]
