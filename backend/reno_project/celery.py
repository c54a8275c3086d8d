"""
Celery application for reno_project.
"""
import os

from celery import Celery

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "reno_project.settings")

app = Celery("reno_project")
app.config_from_object("django.conf:settings", namespace="CELERY")
app.autodiscover_tasks()
