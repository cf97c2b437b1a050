import os
import time
import logging
from typing import Optional
from flask import Flask
from dotenv import load_dotenv
from sqlalchemy.exc import SQLAlchemyError

from models import db

# Configure logging for database operations
logger = logging.getLogger(__name__)

DEFAULT_ENVIRONMENT = "local"


def build_database_uri(environment: str) -> str:
    """Resolve the SQLAlchemy URI for ENVIRONMENT. DATABASE_URL always wins."""
    override = os.getenv("DATABASE_URL")
    if override:
        return override

    if environment == "test":
        return "sqlite://"

    if environment == "local":
        db_host = os.getenv("LOCAL_DB_HOST", "localhost")
        db_port = os.getenv("LOCAL_DB_PORT", "3306")
        db_user = os.getenv("LOCAL_DB_USER", "root")
        db_password = os.getenv("LOCAL_DB_PASSWORD", "")
        db_name = os.getenv("LOCAL_DB_NAME", "school_academics")
    elif environment == "production" or environment == "online":
        db_host = os.getenv("ONLINE_DB_HOST")
        db_port = os.getenv("ONLINE_DB_PORT", "3306")
        db_user = os.getenv("ONLINE_DB_USER")
        db_password = os.getenv("ONLINE_DB_PASSWORD")
        db_name = os.getenv("ONLINE_DB_NAME")
        missing = [
            name
            for name, value in (
                ("ONLINE_DB_HOST", db_host),
                ("ONLINE_DB_USER", db_user),
                ("ONLINE_DB_PASSWORD", db_password),
                ("ONLINE_DB_NAME", db_name),
            )
            if not value
        ]
        if missing:
            raise ValueError(f"Missing database settings: {', '.join(missing)}")
    else:
        raise ValueError(
            f"Invalid ENVIRONMENT value: {environment}. Must be 'local', 'test' or 'production'/'online'"
        )

    return f"mysql+pymysql://{db_user}:{db_password}@{db_host}:{db_port}/{db_name}"


def load_academic_settings(app: Flask):
    """Copy grading/exam settings from the environment into app.config.

    Values already present in app.config (e.g. passed to create_app) are kept.
    """
    app.config.setdefault("GRADE_SCALE", os.getenv("GRADE_SCALE", "extended"))
    app.config.setdefault(
        "PASS_PERCENTAGE", float(os.getenv("PASS_PERCENTAGE", "33"))
    )
    app.config.setdefault("MAX_FULL_MARKS", float(os.getenv("MAX_FULL_MARKS", "200")))
    app.config.setdefault(
        "MIN_EXAM_DURATION", int(os.getenv("MIN_EXAM_DURATION", "30"))
    )


class DatabaseConnection:
    """Handles database connection, initialization, and management."""

    def __init__(self, app: Optional[Flask] = None):
        self.app = app
        if app is not None:
            self.init_app(app)

    def init_app(self, app: Flask):
        """Initialize database connection with Flask app."""
        self.app = app
        # Load environment variables
        load_dotenv()
        logger.info("Environment variables loaded from .env file")

        environment = (
            app.config.get("ENVIRONMENT")
            or os.getenv("ENVIRONMENT", DEFAULT_ENVIRONMENT)
        ).lower()
        logger.info(f"Database environment: {environment}")

        if not app.config.get("SQLALCHEMY_DATABASE_URI"):
            app.config["SQLALCHEMY_DATABASE_URI"] = build_database_uri(environment)
        app.config["SQLALCHEMY_TRACK_MODIFICATIONS"] = False

        db_uri = app.config["SQLALCHEMY_DATABASE_URI"]
        if db_uri.startswith("mysql"):
            # Connection pool settings to handle connection timeouts
            app.config.setdefault(
                "SQLALCHEMY_ENGINE_OPTIONS",
                {
                    "pool_size": 10,  # Number of connections to maintain
                    "max_overflow": 20,  # Additional connections beyond pool_size
                    "pool_recycle": 3600,  # Recycle connections after 1 hour
                    "pool_pre_ping": True,  # Test connections before use
                    "pool_timeout": 30,  # Connection timeout in seconds
                    "connect_args": {
                        "connect_timeout": 10,
                        "read_timeout": 30,
                        "write_timeout": 30,
                    },
                },
            )
        password = os.getenv("ONLINE_DB_PASSWORD") or os.getenv("LOCAL_DB_PASSWORD")
        logger.info(
            f"Database URI configured for {environment}: {db_uri.replace(password, '***') if password else db_uri}"
        )

        load_academic_settings(app)

        # Check if SQLAlchemy is already registered with this app
        if not hasattr(app, "extensions") or "sqlalchemy" not in app.extensions:
            db.init_app(app)
            logger.info("Database initialized with Flask app")
        else:
            logger.info(
                "Database already initialized with Flask app - skipping re-initialization"
            )

    def test_connection(self) -> bool:
        """Test database connection with retry mechanism."""
        if self.app is None:
            logger.error("Database connection not initialized with Flask app")
            return False

        max_retries = 3
        retry_delay = 1

        for attempt in range(max_retries):
            try:
                logger.info(
                    f"Testing database connection... (attempt {attempt + 1}/{max_retries})"
                )
                with self.app.app_context():
                    with db.engine.connect() as connection:
                        connection.execute(db.text("SELECT 1"))
                logger.info("Database connection successful")
                return True
            except Exception as e:
                logger.warning(
                    f"Database connection failed (attempt {attempt + 1}): {str(e)}"
                )
                if attempt < max_retries - 1:
                    time.sleep(retry_delay)
                    retry_delay *= 2  # Exponential backoff
                else:
                    logger.error(
                        f"Database connection failed after {max_retries} attempts: {str(e)}"
                    )
        return False

    def create_tables(self) -> bool:
        """Create all database tables."""
        if self.app is None:
            logger.error("Database connection not initialized with Flask app")
            return False
        try:
            logger.info("Creating database tables...")
            with self.app.app_context():
                db.create_all()
            logger.info("Database tables created successfully")
            return True
        except Exception as e:
            logger.error(f"Database table creation failed: {str(e)}")
            return False

    def init_database(self) -> bool:
        """Initialize database connection and create tables if they don't exist."""
        logger.info("Starting database initialization...")

        if not self.test_connection():
            return False

        if not self.create_tables():
            return False

        return True


# Global database connection instance
db_conn = DatabaseConnection()


def init_database_with_app(app: Flask) -> bool:
    """Initialize database with Flask app and return success status."""
    global db_conn
    db_conn = DatabaseConnection(app)
    return db_conn.init_database()


def commit_session(action: str):
    """Commit the current unit of work; roll back and re-raise on failure."""
    try:
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.error(f"Database commit failed during {action}: {str(e)}")
        raise
