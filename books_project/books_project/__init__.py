# Celery instance is defined in books_project/celery.py
# celery_app becomes the task queue app for the whole project
from .celery import celery_app

__all__ = ("celery_app",)

""" Start a worker with "celery -A books_project worker -l info":
    -A books_project imports this module, which exposes celery_app. """
