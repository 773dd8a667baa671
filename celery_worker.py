#!/usr/bin/env python3
"""
Celery worker script for the shop pricing service.
Run this script to start the Celery worker for notification processing.
"""

from dotenv import load_dotenv

# Load environment variables
load_dotenv()

if __name__ == "__main__":
    import models  # noqa: F401
    from core.celery import celery_app
    from core.config import settings
    from core.logging_config import configure_logging

    configure_logging(settings.LOG_LEVEL)

    # Start Celery worker
    celery_app.start([
        "worker",
        "--loglevel=info",
        "--concurrency=4",
        "--without-gossip",
        "--without-mingle",
        "--without-heartbeat",
    ])
