"""Transaction boundary for workflow operations."""

import logging
from contextlib import contextmanager
from typing import Iterator

import psycopg2

from clients.postgres_client import PostgresClient, Transaction
from core.errors import CaseNoteError, IntegrityFailure

logger = logging.getLogger(__name__)


@contextmanager
def atomic(postgres: PostgresClient, operation: str) -> Iterator[Transaction]:
    """
    Run one workflow operation in a single transaction.

    Workflow errors raised inside the block roll back and propagate unchanged.
    Storage errors roll back and surface as IntegrityFailure.

    Args:
        postgres: Client to borrow the connection from
        operation: Short name used in logs and the failure message
    """
    try:
        with postgres.transaction() as tx:
            yield tx
    except CaseNoteError:
        raise
    except psycopg2.Error as e:
        logger.exception("Storage failure during %s, rolled back", operation)
        raise IntegrityFailure(f"{operation} failed; no changes were applied") from e
