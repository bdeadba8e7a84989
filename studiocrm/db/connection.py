"""
Database Connection Management
PostgreSQL connections with a context manager pattern. One transaction per block.
"""

import psycopg2
from psycopg2.extras import RealDictCursor
from contextlib import contextmanager
from pathlib import Path
import logging

from studiocrm.config import config

logger = logging.getLogger(__name__)

SCHEMA_PATH = Path(__file__).parent / 'schema.sql'


@contextmanager
def get_db_connection():
    """
    Context manager for database connections.
    Commits on success, rolls back on error, always closes the connection.

    Usage:
        with get_db_connection() as conn:
            cur = conn.cursor()
            cur.execute("SELECT * FROM contracts")
            results = cur.fetchall()
    """
    conn = None
    try:
        conn = psycopg2.connect(config.DATABASE_URL)
        logger.debug("Database connection established")
        yield conn
        conn.commit()
        logger.debug("Transaction committed")
    except Exception as e:
        if conn:
            conn.rollback()
            logger.error(f"Transaction rolled back due to error: {e}")
        raise
    finally:
        if conn:
            conn.close()
            logger.debug("Database connection closed")


@contextmanager
def get_db_cursor(dict_cursor=True):
    """
    Context manager for a cursor inside its own transaction.
    Returns RealDictCursor by default so rows unpack straight into the dataclasses.

    Usage:
        with get_db_cursor() as cur:
            cur.execute("SELECT * FROM contracts WHERE id = %s", (7,))
            row = cur.fetchone()
            contract = Contract(**row)
    """
    with get_db_connection() as conn:
        cursor_factory = RealDictCursor if dict_cursor else None
        cur = conn.cursor(cursor_factory=cursor_factory)
        try:
            yield cur
        finally:
            cur.close()


def init_schema() -> None:
    """Create the contracts, milestones and contract_status_history tables if missing."""
    sql = SCHEMA_PATH.read_text(encoding='utf-8')
    with get_db_cursor(dict_cursor=False) as cur:
        cur.execute(sql)
    logger.info(f"Schema applied from {SCHEMA_PATH.name}")
