"""
run_price_check.py

Cron entry point: one price check sweep, then exit.
Exit code 1 when the due flights could not be loaded.
"""

import logging
import sys
from datetime import datetime

from config import price_checks_enabled
from db import SessionLocal, engine
from errors import SweepFatalError
from services.price_check_service import deactivate_past_flights, run_price_check_cycle

logger = logging.getLogger("run_price_check")


def main() -> int:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )

    if not price_checks_enabled():
        logger.info("[cron] PRICE_CHECKS_ENABLED is false, skipping price check")
        return 0

    logger.info("[cron] starting price check at %s", datetime.utcnow().isoformat())
    try:
        db = SessionLocal()
        try:
            deactivate_past_flights(db, datetime.utcnow().date())
        except Exception:
            # Stale rows are only skipped by the due query; still run the sweep
            logger.exception("[cron] past flight cleanup failed")
            db.rollback()
        finally:
            db.close()

        report = run_price_check_cycle()
    except SweepFatalError as e:
        logger.error("[cron] price check aborted: %s", e)
        return 1
    finally:
        engine.dispose()

    logger.info("[cron] price check finished %s", report.summary())
    for failure in report.failures:
        logger.warning("[cron] flight=%s status=%s error=%s", failure.flight_id, failure.status.value, failure.error)
    return 0


if __name__ == "__main__":
    sys.exit(main())
