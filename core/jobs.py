"""
Periodic jobs, meant to be run from cron or a scheduler.

    python -m core.jobs
"""

import logging
import os

from dotenv import load_dotenv

from clients.postgres_client import PostgresClient
from clients.vault_client import get_database_url
from core.services.handover_service import HandoverService, SweepResult
from core.wiring import build_services

logger = logging.getLogger(__name__)


def run_overdue_sweep(handovers: HandoverService) -> SweepResult:
    """Mark stale pending handovers overdue or escalated."""
    result = handovers.sweep_overdue()
    logger.info("Overdue sweep finished: %d overdue, %d escalated", result.overdue, result.escalated)
    return result


def main() -> None:
    load_dotenv()
    logging.basicConfig(
        level=os.getenv("CASENOTE_LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    postgres = PostgresClient(get_database_url(), min_connections=1, max_connections=2)
    try:
        services = build_services(postgres)
        run_overdue_sweep(services["handover"])
    finally:
        postgres.close()


if __name__ == "__main__":
    main()
