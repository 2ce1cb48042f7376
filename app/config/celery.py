"""
Celery configuration for the chat backend.

Celery runs the periodic housekeeping jobs listed in
CELERY_BEAT_SCHEDULE (config/settings.py):
- users.tasks.mark_stale_users_offline (every minute)
- chat.tasks.purge_stale_typing_indicators (hourly)

Redis is both the message broker and the result backend. Tasks are
auto-discovered from all installed Django apps.

For more information, see:
https://docs.celeryq.dev/en/stable/django/first-steps-with-django.html
"""

import os

from celery import Celery

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

app = Celery("config")

# All Celery settings are prefixed with CELERY_ in settings.py
app.config_from_object("django.conf:settings", namespace="CELERY")

app.autodiscover_tasks()
