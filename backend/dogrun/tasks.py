import os
from celery import Celery
from celery.utils.log import get_task_logger

from . import storage

CELERY_BROKER_URL = os.getenv("CELERY_BROKER_URL", "memory://")
celery_app = Celery("tasks", broker=CELERY_BROKER_URL)
celery_app.conf.task_always_eager = (
    CELERY_BROKER_URL == "memory://" or os.getenv("TESTING") == "1"
)

_logger = get_task_logger(__name__)


@celery_app.task
def purge_stored_objects(locators: list[str]) -> list[str]:
    """Delete decided vaccine documents or removed facility photos from storage."""
    try:
        removed = storage.delete_locators(locators)
    except Exception:
        # Leftover temp objects are swept by the retention cleanup.
        _logger.exception("Storage purge failed for %s", locators)
        return []
    _logger.info("Purged %d stored object(s)", len(removed))
    return removed


def enqueue_storage_purge(locators: list[str | None]):
    locators = [locator for locator in locators if locator]
    if not locators:
        return
    try:
        if celery_app.conf.task_always_eager:
            purge_stored_objects(locators)
        else:
            purge_stored_objects.delay(locators)
    except Exception:
        # runs after commit; leftovers fall to the retention cleanup
        _logger.exception("Could not schedule storage purge for %s", locators)
