"""
Scheduled maintenance: duplicate asset cleanup and the fuzzy duplicate report.
"""

import logging
from typing import Optional

from quizscout.config import settings
from quizscout.database import session_scope
from quizscout.services.duplicate_detector import find_candidates, record_candidates
from quizscout.storage import get_asset_store
from quizscout.tasks.celery_app import celery_app

logger = logging.getLogger(__name__)


@celery_app.task(name="quizscout.tasks.maintenance_tasks.cleanup_duplicate_assets_task", bind=True)
def cleanup_duplicate_assets_task(self, dry_run: bool = False):
    """
    Weekly task keeping only the newest original/thumb per owner directory.
    """
    logger.info(f"Starting duplicate asset cleanup (dry_run={dry_run})")

    try:
        stats = get_asset_store(settings).cleanup_duplicate_assets(dry_run=dry_run)
    except Exception as e:
        logger.error(f"Error in asset cleanup task: {e}", exc_info=True)
        raise

    return {"status": "success", "dry_run": dry_run, "task_id": self.request.id, **stats}


@celery_app.task(name="quizscout.tasks.maintenance_tasks.report_fuzzy_duplicates_task", bind=True)
def report_fuzzy_duplicates_task(self, city_id: Optional[int] = None):
    """
    Daily advisory report of likely duplicate venues.

    Candidates go to the review queue; venues are never merged.
    """
    logger.info("Starting fuzzy duplicate report")

    try:
        with session_scope() as db:
            candidates = find_candidates(db, city_id=city_id)
            created = record_candidates(db, candidates)
    except Exception as e:
        logger.error(f"Error in duplicate report task: {e}", exc_info=True)
        raise

    return {
        "status": "success",
        "candidates": len(candidates),
        "new_candidates": created,
        "task_id": self.request.id,
    }
