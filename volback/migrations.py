"""
Database schema setup for volback.

Simple schema bootstrap to handle additive changes without requiring Alembic.
"""

import logging
from sqlalchemy import text, inspect
from volback import db

logger = logging.getLogger(__name__)


def init_database_schema(app):
    """
    Initialize database schema and run migrations.

    Creates tables if they don't exist and adds any columns introduced since
    the database was first created.
    """
    with app.app_context():
        inspector = inspect(db.engine)
        existing_tables = inspector.get_table_names()

        # If no tables exist, create them all
        if not existing_tables:
            logger.debug("No tables found - creating initial database schema")
            db.create_all()
        else:
            # Create tables added after the first run, then migrate columns
            db.create_all()
            run_migrations(app, inspector)


def run_migrations(app, inspector=None):
    """
    Run all necessary database migrations.

    This function checks the database schema and applies any missing changes.
    """
    if inspector is None:
        inspector = inspect(db.engine)

    # Migration 1: Add retention counters to backup_history
    if 'backup_history' in inspector.get_table_names():
        columns = [col['name'] for col in inspector.get_columns('backup_history')]

        for column in ('retention_kept', 'retention_deleted'):
            if column not in columns:
                logger.info(f"Running migration: Adding {column} column to backup_history table")
                try:
                    db.session.execute(text(
                        f"ALTER TABLE backup_history ADD COLUMN {column} INTEGER"
                    ))
                    db.session.commit()
                    logger.info(f"Successfully added {column} column")
                except Exception as e:
                    logger.error(f"Failed to add {column} column: {e}")
                    db.session.rollback()
