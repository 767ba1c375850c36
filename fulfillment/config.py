"""
Commitment Fulfillment Orchestrator configuration.

One class per APP_ENV value; ``create_app`` instantiates the selected class so
that ProductionConfig can refuse to start without a database.

Environment variables:
    DATABASE_URL              PostgreSQL DSN (dev falls back to a local SQLite file)
    TEST_DATABASE_URL         database for the test suite (default: in-memory SQLite)
    CORS_ORIGINS              comma-separated origins allowed to call the API
    REDIS_URL                 rate-limit storage (default: memory://)
    LOG_LEVEL                 root log level (see middleware/logging_config.py)
    ORCHESTRATE_RATE_LIMIT    per-tenant limit on the orchestrate trigger
    MAX_DELIVERABLES_PER_RUN  upper bound on deliverables one commitment may expand to
"""

import os

basedir = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))

# Local orchestrator database, created under instance/ on first start
_LOCAL_DB = f"sqlite:///{os.path.join(basedir, 'instance', 'fulfillment_dev.db')}"
_TEST_DB = "sqlite:///:memory:"

# A run holds one connection for its whole transaction
_POOL_OPTIONS = {
    "pool_pre_ping": True,
    "pool_size": 5,
    "max_overflow": 10,
    "pool_recycle": 300,
    "pool_timeout": 20,
}


def _database_url() -> str:
    raw = os.getenv("DATABASE_URL", "")
    # SQLAlchemy only accepts the postgresql:// scheme
    return raw.replace("postgres://", "postgresql://", 1)


class Config:
    """Settings shared by every environment."""

    DEBUG = False
    TESTING = False

    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = _POOL_OPTIONS

    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")

    # Orchestration
    ORCHESTRATE_RATE_LIMIT = os.getenv("ORCHESTRATE_RATE_LIMIT", "30/minute")
    MAX_DELIVERABLES_PER_RUN = int(os.getenv("MAX_DELIVERABLES_PER_RUN", "5000"))


class DevelopmentConfig(Config):
    """Local runs: PostgreSQL when DATABASE_URL is set, otherwise the SQLite file."""

    DEBUG = True
    SQLALCHEMY_DATABASE_URI = _database_url() or _LOCAL_DB
    SQLALCHEMY_ENGINE_OPTIONS = _POOL_OPTIONS if os.getenv("DATABASE_URL") else {"pool_pre_ping": True}


class TestingConfig(Config):
    """pytest: fresh schema per test, no rate limits."""

    TESTING = True
    SQLALCHEMY_DATABASE_URI = os.getenv("TEST_DATABASE_URL", _TEST_DB)
    # In-memory SQLite runs on a StaticPool, which takes no sizing options
    SQLALCHEMY_ENGINE_OPTIONS = {"pool_pre_ping": True}
    RATELIMIT_ENABLED = False


class ProductionConfig(Config):
    """PostgreSQL only; a stuck orchestration statement is cancelled after 30s."""

    SQLALCHEMY_DATABASE_URI = _database_url() or None
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "")

    SQLALCHEMY_ENGINE_OPTIONS = {
        **_POOL_OPTIONS,
        "connect_args": {"options": "-c statement_timeout=30000"},
    }

    def __init__(self):
        if not self.SQLALCHEMY_DATABASE_URI:
            raise RuntimeError("DATABASE_URL environment variable is required in production")


config = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
    "default": DevelopmentConfig,
}
