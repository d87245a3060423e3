from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session
from omnipos.core_settings import get_settings
from omnipos.domain.models import Base

def build_engine(url: str, pool_size: int = 5, max_overflow: int = 10) -> Engine:
    """Create an engine for ``url``.

    SQLite connections get foreign key enforcement switched on so local and
    test databases reject dangling references the way PostgreSQL does.
    """
    if url.startswith("sqlite"):
        engine = create_engine(
            url,
            echo=False,
            future=True,
            connect_args={"check_same_thread": False, "timeout": 30},
        )

        @event.listens_for(engine, "connect")
        def _enable_foreign_keys(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        return engine
    return create_engine(
        url,
        echo=False,
        future=True,
        pool_pre_ping=True,
        pool_size=pool_size,
        max_overflow=max_overflow,
    )

def build_session_factory(bind: Engine) -> sessionmaker:
    return sessionmaker(bind=bind, autoflush=False, autocommit=False, expire_on_commit=False)

settings = get_settings()
engine = build_engine(settings.database_url, settings.DB_POOL_SIZE, settings.DB_MAX_OVERFLOW)
SessionLocal = build_session_factory(engine)

def get_db() -> Session:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

def init_models(bind: Engine = None):
    Base.metadata.create_all(bind or engine)

def ping(bind: Engine = None) -> None:
    with (bind or engine).connect() as conn:
        conn.execute(text("SELECT 1")).fetchone()
