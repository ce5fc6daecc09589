# app/database.py
import os
import logging

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool
from dotenv import load_dotenv

load_dotenv() # Load .env file from project root

logger = logging.getLogger(__name__)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./services.db")

# Check if it's SQLite and adjust connect_args if needed
kwargs = {}
if DATABASE_URL.startswith("sqlite"):
    # Needed for SQLite to allow usage across threads (FastAPI uses threads)
    kwargs["connect_args"] = {"check_same_thread": False}
    if DATABASE_URL in ("sqlite://", "sqlite:///:memory:"):
        # One shared connection, otherwise every session sees an empty database
        kwargs["poolclass"] = StaticPool

engine = create_engine(DATABASE_URL, **kwargs)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()

def get_db():
    """Dependency to get a DB session for a request."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

def create_db_and_tables():
    """Creates database tables based on models."""
    # Import models so they register on Base.metadata before create_all.
    from .app import models  # noqa: F401

    logger.info("Creating database tables...")
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables created (if they didn't exist).")

def drop_db_and_tables():
    """Drops every table known to the models. Used by the test suite."""
    Base.metadata.drop_all(bind=engine)
