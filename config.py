"""Configuration for the LocalLibrary catalog."""
import os

basedir = os.path.abspath(os.path.dirname(__file__))


class Config:
    """Default application configuration, overridable from the environment."""

    SECRET_KEY = os.getenv("CATALOG_SECRET_KEY", "dev-secret-key")

    SQLALCHEMY_DATABASE_URI = os.getenv(
        "CATALOG_DATABASE_URI",
        f"sqlite:///{os.path.join(basedir, 'data/catalog.sqlite')}",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.getenv("CATALOG_LOG_LEVEL", "INFO")


class TestConfig(Config):
    """In-memory database for the test suite."""

    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite://"
