"""
Celery configuration for the bundlehub project.

This module sets up Celery for the fulfillment background tasks and the
periodic dispatcher tick driven by django-celery-beat.
"""
import os
from celery import Celery

# Set the default Django settings module
os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'config.settings')

app = Celery('bundlehub')

# Load configuration from Django settings with CELERY namespace
app.config_from_object('django.conf:settings', namespace='CELERY')

app.autodiscover_tasks(lambda: ['apps.orders'], related_name='tasks')
