import pytest

from app import create_app
from utils.db_conn import DatabaseConnection, build_database_uri


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in (
        "DATABASE_URL",
        "ENVIRONMENT",
        "LOCAL_DB_HOST",
        "LOCAL_DB_PORT",
        "LOCAL_DB_USER",
        "LOCAL_DB_PASSWORD",
        "LOCAL_DB_NAME",
        "ONLINE_DB_HOST",
        "ONLINE_DB_USER",
        "ONLINE_DB_PASSWORD",
        "ONLINE_DB_NAME",
        "GRADE_SCALE",
        "PASS_PERCENTAGE",
        "MAX_FULL_MARKS",
        "MIN_EXAM_DURATION",
    ):
        monkeypatch.delenv(name, raising=False)


def test_test_environment_uses_in_memory_sqlite():
    assert build_database_uri("test") == "sqlite://"


def test_local_environment_defaults():
    assert (
        build_database_uri("local")
        == "mysql+pymysql://root:@localhost:3306/school_academics"
    )


def test_database_url_overrides_environment(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "sqlite:///records.db")
    assert build_database_uri("production") == "sqlite:///records.db"


def test_production_requires_settings(monkeypatch):
    monkeypatch.setenv("ONLINE_DB_HOST", "db.example.org")
    with pytest.raises(ValueError) as excinfo:
        build_database_uri("production")
    assert "ONLINE_DB_USER" in str(excinfo.value)


def test_unknown_environment():
    with pytest.raises(ValueError):
        build_database_uri("staging")


def test_academic_settings_loaded_from_environment(monkeypatch):
    monkeypatch.setenv("GRADE_SCALE", "compact")
    monkeypatch.setenv("PASS_PERCENTAGE", "40")
    app = create_app({"ENVIRONMENT": "test"})
    assert app.config["SQLALCHEMY_DATABASE_URI"] == "sqlite://"
    assert app.config["GRADE_SCALE"] == "compact"
    assert app.config["PASS_PERCENTAGE"] == 40.0
    assert app.config["MAX_FULL_MARKS"] == 200.0
    assert app.config["MIN_EXAM_DURATION"] == 30


def test_init_database_creates_tables():
    app = create_app({"ENVIRONMENT": "test"})
    assert DatabaseConnection(app).init_database() is True
