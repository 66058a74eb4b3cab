"""
Human-readable request and batch numbers.

Request numbers look like REQ202610190007 and batch numbers like
BATCH20261019-003. Each prefix+day pair has its own counter row in
request_sequences, incremented inside the creating transaction so numbers are
gap-free per committed day and never reused.
"""

from datetime import date

from clients.postgres_client import Transaction


def sequence_key(prefix: str, day: date) -> str:
    return f"{prefix}{day:%Y%m%d}"


def format_request_number(prefix: str, day: date, sequence: int) -> str:
    return f"{sequence_key(prefix, day)}{sequence:04d}"


def format_batch_number(prefix: str, day: date, sequence: int) -> str:
    return f"{sequence_key(prefix, day)}-{sequence:03d}"


def next_sequence(tx: Transaction, key: str) -> int:
    """Increment and return the counter for key, creating it at 1."""
    return tx.execute_scalar(
        """
        INSERT INTO request_sequences (date_key, current_sequence)
        VALUES (%s, 1)
        ON CONFLICT (date_key)
        DO UPDATE SET current_sequence = request_sequences.current_sequence + 1
        RETURNING current_sequence
        """,
        (key,)
    )


def next_request_number(tx: Transaction, prefix: str, day: date) -> str:
    return format_request_number(prefix, day, next_sequence(tx, sequence_key(prefix, day)))


def next_batch_number(tx: Transaction, prefix: str, day: date) -> str:
    return format_batch_number(prefix, day, next_sequence(tx, sequence_key(prefix, day)))
