# app/deps.py
# Role: Shared request dependencies.
#       Provides the standard SQLAlchemy database session dependency and the
#       owner id resolution used to scope every query.

"""
Shared dependencies for the finance hub API.
"""

from typing import Generator, Optional

from fastapi import Header, HTTPException
from sqlalchemy.orm import Session

from db import SessionLocal

# -------------------------------------------------------------------
# Database dependency
# -------------------------------------------------------------------

def get_db() -> Generator[Session, None, None]:
    """
    FastAPI dependency that yields a database session and ensures it is closed.

    Typical usage in routes:
        db: Session = Depends(get_db)
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

# -------------------------------------------------------------------
# Owner resolution
# -------------------------------------------------------------------

def get_current_owner_id(x_user_id: Optional[str] = Header(None)) -> str:
    """
    Owner of the request, taken from the X-User-Id header.

    Session handling lives in front of this service; it only forwards the
    resolved user id.
    """
    owner_id = (x_user_id or "").strip()
    if not owner_id:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return owner_id
