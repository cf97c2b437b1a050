import logging
import sys

from flask import Flask

from utils.db_conn import DatabaseConnection, init_database_with_app

# Setup logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def create_app(config: dict | None = None) -> Flask:
    """Build the Flask app that hosts the academic records engine.

    config entries are applied before the database layer reads its settings,
    so tests can pass {"ENVIRONMENT": "test"} or an explicit
    SQLALCHEMY_DATABASE_URI.
    """
    app = Flask(__name__)
    if config:
        app.config.update(config)

    DatabaseConnection(app)
    return app


def run_startup_checks_or_exit(app: Flask):
    """Connect, create missing tables, and exit the process on failure."""
    logger.info("Running startup checks...")
    if init_database_with_app(app):
        logger.info("All systems green.")
        return
    logger.error("Startup checks failed. Aborting.")
    sys.exit(1)


if __name__ == "__main__":
    logger.info("Application startup initiated")
    run_startup_checks_or_exit(create_app())
