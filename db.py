# db.py
# Role: Database bootstrap for the finance hub.
#       Builds the SQLAlchemy engine from config.DATABASE_URL, the session
#       factory, and the declarative Base shared by all ORM models.

"""
Database setup for the finance hub.

- Uses config.DATABASE_URL (SQLite under <project_root>/database/ by default).
"""

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from config import DATABASE_URL

# For SQLite, we need check_same_thread=False for FastAPI (threaded request handling)
connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(
    DATABASE_URL,
    connect_args=connect_args,
)

# Standard session factory used via dependency injection (see app/deps.py:get_db)
SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

# Declarative base class for ORM models
Base = declarative_base()
