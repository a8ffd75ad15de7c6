"""Engine, session factory and the declarative base for worksign tables."""
from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from worksign.core.config import get_settings


def _engine_options(url: str) -> dict:
    if url.startswith("sqlite"):
        # Request handlers run in a threadpool; one SQLite file is shared across them
        return {"connect_args": {"check_same_thread": False}}
    # Hosted PostgreSQL drops idle connections
    return {"pool_pre_ping": True, "pool_size": 5, "max_overflow": 10}


DATABASE_URL = get_settings().database_url
engine = create_engine(DATABASE_URL, **_engine_options(DATABASE_URL))

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def init_db() -> None:
    """Create missing tables. Every model module must be imported first."""
    Base.metadata.create_all(bind=engine)


def get_db():
    """Request-scoped session; closed once the response is sent."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
