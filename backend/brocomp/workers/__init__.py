"""Celery workers and tasks.

Tasks are registered when ``brocomp.core.celery`` is imported.
"""
