from sqlalchemy import create_engine, event
from sqlalchemy.orm import declarative_base, sessionmaker
from paywallet.config import settings
import logging

logger = logging.getLogger(__name__)


def enable_sqlite_savepoints(sqlite_engine):
    """
    pysqlite ouvre ses transactions tout seul, ce qui casse SAVEPOINT.
    On désactive ce comportement et on émet BEGIN nous-mêmes.
    """
    @event.listens_for(sqlite_engine, "connect")
    def _disable_pysqlite_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(sqlite_engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    return sqlite_engine


# Configuration de la base de données
if settings.DATABASE_URL.startswith("sqlite"):
    engine = enable_sqlite_savepoints(create_engine(
        settings.DATABASE_URL,
        connect_args={"check_same_thread": False},
    ))
else:
    engine = create_engine(
        settings.DATABASE_URL,
        pool_size=10,
        max_overflow=20,
        pool_pre_ping=True
    )

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
