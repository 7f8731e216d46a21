import logging

from sqlalchemy import inspect

from ayu_connect.app import configure_logging
from ayu_connect.config import Config
from ayu_connect.database import Database

logger = logging.getLogger(__name__)


def create_tables(url=None):
    """Create all database tables and return their names"""
    database = Database(url or Config.DATABASE_URL)
    try:
        logger.info("[DB] Creating database tables...")
        database.create_all()
        table_names = inspect(database.engine).get_table_names()
        logger.info("[DB] Tables in database: %s", table_names)
        return table_names
    finally:
        database.dispose()


if __name__ == "__main__":
    configure_logging(Config.LOG_LEVEL)
    create_tables()
