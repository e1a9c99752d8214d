"""STRATA — Database Engine Factory."""

from sqlalchemy import event, text
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import ArgumentError
from sqlmodel import SQLModel, create_engine

from strata.core.logging import get_logger

# Imported for their side effect: registering tables on SQLModel.metadata
from strata.models import bookkeeping_models, raw_models, summary_models  # noqa: F401

logger = get_logger("database")


def mask_url(url: str) -> str:
    """Render `url` with its password hidden, for logs and /health."""
    try:
        return make_url(url).render_as_string(hide_password=True)
    except ArgumentError:
        return "<unparsable database url>"


def _enable_sqlite_wal(dbapi_connection, connection_record) -> None:
    # WAL lets trend reads run while a compaction holds the write lock
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA synchronous=NORMAL")
    cursor.close()


def build_engine(db_url: str) -> Engine:
    """Create an engine for the given URL with backend-specific options."""
    engine_kwargs: dict = {"echo": False}

    if db_url.startswith("sqlite"):
        logger.info("📦 Database backend: SQLite")
        logger.info(f"📍 Database path: {db_url}")
        engine_kwargs["connect_args"] = {"check_same_thread": False}
    else:
        logger.info("🐘 Database backend: server")
        logger.info(f"📍 Database URL: {mask_url(db_url)}")
        engine_kwargs["pool_pre_ping"] = True
        engine_kwargs["pool_size"] = 5
        engine_kwargs["max_overflow"] = 10
        engine_kwargs["pool_recycle"] = 300

    engine = create_engine(db_url, **engine_kwargs)

    if db_url.startswith("sqlite") and ":memory:" not in db_url and db_url != "sqlite://":
        event.listen(engine, "connect", _enable_sqlite_wal)

    logger.info("⚙️  Database engine created")
    return engine


def test_connection(engine: Engine) -> bool:
    """Test the database connection with SELECT 1."""
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
            conn.commit()
        logger.info("✅ Database connection test: SUCCESS")
        return True
    except Exception as e:
        logger.error(f"❌ Database connection test: FAILED — {e}")
        return False


def init_db(engine: Engine) -> None:
    """Create all tables."""
    logger.info("🔨 Creating progression tables...")
    SQLModel.metadata.create_all(engine)
    logger.info("✅ Progression tables ready")
