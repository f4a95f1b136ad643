"""
Migration: Enforce unique invoice numbers.

Invoice numbers are assigned by scanning the highest number issued this year
and inserting the next one. The unique index makes a concurrent duplicate
fail at insert time so the caller can retry with a fresh number.

This migration:
1. Reports any duplicate invoice_number values already present
2. Creates a unique index on invoice(invoice_number)
"""
import logging
from sqlalchemy import text

logger = logging.getLogger(__name__)

INDEX_NAME = "uniq_invoice_invoice_number"


def is_postgres(engine):
    """Check if database is PostgreSQL."""
    return "postgresql" in str(engine.url).lower()


def migrate(engine):
    """Run migration."""
    with engine.connect() as conn:
        trans = conn.begin()

        try:
            if is_postgres(engine):
                migrate_postgres(conn)
            else:
                migrate_sqlite(conn)

            trans.commit()
            logger.info("Migration 001 completed successfully")
        except Exception as e:
            trans.rollback()
            logger.error(f"Migration 001 failed: {str(e)}")
            raise


def _check_duplicates(conn):
    duplicates = conn.execute(text("""
        SELECT invoice_number, COUNT(*) AS count
        FROM invoice
        GROUP BY invoice_number
        HAVING COUNT(*) > 1
    """)).fetchall()

    if duplicates:
        for number, count in duplicates:
            logger.error(f"Duplicate invoice number {number} ({count} rows)")
        raise RuntimeError(
            f"Found {len(duplicates)} duplicated invoice numbers; renumber them before adding the unique index"
        )


def migrate_postgres(conn):
    """PostgreSQL migration."""
    logger.info("Running PostgreSQL migration...")

    result = conn.execute(text("""
        SELECT table_name
        FROM information_schema.tables
        WHERE table_name = 'invoice'
    """))
    if not result.fetchone():
        logger.info("Invoice table does not exist, skipping migration")
        return

    _check_duplicates(conn)

    logger.info("Creating unique index on invoice_number...")
    conn.execute(text(f"""
        CREATE UNIQUE INDEX IF NOT EXISTS {INDEX_NAME}
        ON invoice (invoice_number)
    """))


def migrate_sqlite(conn):
    """SQLite migration."""
    logger.info("Running SQLite migration...")

    result = conn.execute(text("""
        SELECT name FROM sqlite_master
        WHERE type='table' AND name='invoice'
    """))
    if not result.fetchone():
        logger.info("Invoice table does not exist, skipping migration")
        return

    _check_duplicates(conn)

    logger.info("Creating unique index on invoice_number...")
    conn.execute(text(f"""
        CREATE UNIQUE INDEX IF NOT EXISTS {INDEX_NAME}
        ON invoice (invoice_number)
    """))


if __name__ == "__main__":
    from db import engine
    logging.basicConfig(level=logging.INFO)
    migrate(engine)
