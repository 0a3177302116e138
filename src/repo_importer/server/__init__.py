"""App mode: Celery workers and the FastAPI status API."""
