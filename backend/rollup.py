"""Daily study-summary rollup; run once a day after midnight (cron or similar).

Writes ``studySummaries/{yesterday,week,month}`` from every user's logs.
"""

import logging
from datetime import datetime
from zoneinfo import ZoneInfo

from tsureben.core.config import get_settings
from tsureben.db.session import SessionLocal
from tsureben.services.analytics import run_rollup
from tsureben.services.document_store import DocumentStore

logger = logging.getLogger(__name__)


def main():
    settings = get_settings()
    logging.basicConfig(level=settings.log_level.upper())
    today = datetime.now(ZoneInfo(settings.timezone)).date()
    db = SessionLocal()
    try:
        counts = run_rollup(db, DocumentStore(db), today, settings.summary_score_tests)
    finally:
        db.close()
    print(f"Rollup for {today}: {counts}")


if __name__ == "__main__":
    main()
