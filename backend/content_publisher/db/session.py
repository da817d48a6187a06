"""Database engine, session factory and declarative base.

A file-based SQLite database is used unless DATABASE_URL is provided
(in-memory SQLite gives every connection its own database, which breaks the
background publish job that opens a second session). Use a PostgreSQL URL in
real deployments and manage the schema with Alembic.
"""
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, DeclarativeBase
import os
import threading

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite+pysqlite:///./local.db")

# background publish jobs run on worker threads
_connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(DATABASE_URL, echo=False, future=True, connect_args=_connect_args)

# objects stay readable after commit; the publish job hands them across sessions
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)

class Base(DeclarativeBase):
    pass

_init_lock = threading.Lock()
_tables_created = False

def ensure_tables():
    """Create missing tables (SQLite dev runs); Alembic owns the real schema."""
    global _tables_created
    if _tables_created:
        return
    with _init_lock:
        if not _tables_created:
            from . import models  # noqa: F401 register metadata
            Base.metadata.create_all(bind=engine)
            _tables_created = True

def get_db():
    ensure_tables()
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
