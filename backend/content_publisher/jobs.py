"""Cron entry point: publish every scheduled content piece that is due."""
import logging

from .db.session import SessionLocal, ensure_tables
from .dependencies import build_services
from .logging_setup import configure_logging
from .usecases.publish_content import publish_due

logger = logging.getLogger(__name__)


def main() -> int:
    configure_logging()
    ensure_tables()
    services = build_services()
    db = SessionLocal()
    try:
        count = publish_due(db, services.publish_job)
    finally:
        db.close()
    logger.info("scheduled publishing dispatched %d content piece(s)", count)
    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
