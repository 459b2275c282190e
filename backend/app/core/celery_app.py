from celery import Celery

from .config import get_settings
from .logging import configure_logging

settings = get_settings()
configure_logging()

celery_app = Celery(
    "spaces",
    broker=settings.REDIS_URL,
    backend=settings.REDIS_URL,
)

celery_app.conf.update(
    task_routes={
        "app.services.campaign_posts.run_campaign_generation": {"queue": "generation"},
        "app.services.post_images.run_bulk_image_generation": {"queue": "generation"},
        "app.services.logo_overlay.run_bulk_logo_application": {"queue": "generation"},
        "app.services.sharepoint_sync.run_sharepoint_sync": {"queue": "sync"},
        "app.services.apify.run_monitor_actor_run": {"queue": "sync"},
    },
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    enable_utc=True,
    imports=(
        "app.services.campaign_posts",
        "app.services.post_images",
        "app.services.logo_overlay",
        "app.services.sharepoint_sync",
        "app.services.apify",
    ),
)
