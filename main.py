# main.py
# Role: Application entry point for the finance hub.
#       Configures logging, creates database tables, registers the
#       validation error handler and all route modules.

"""
Main FastAPI app for the personal finance hub.

Here we only:
- configure logging
- create DB tables
- map validation errors to HTTP 422
- include route modules
"""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from config import configure_logging
from db import Base, engine
from app.routes_root import router as root_router
from app.routes_transactions import router as transactions_router
from app.services.transaction_rules import TransactionValidationError

configure_logging()
logger = logging.getLogger(__name__)


# -------------------------------------------------------------------
# App & DB setup
# -------------------------------------------------------------------

# Create database tables (only if they don't exist yet).
# This is safe to run on startup for SQLite and development usage.
Base.metadata.create_all(bind=engine)

# FastAPI application instance
app = FastAPI(title="Finance Hub")


@app.exception_handler(TransactionValidationError)
def transaction_validation_error_handler(request: Request, exc: TransactionValidationError):
    logger.warning(f"Rejected {request.method} {request.url.path}: {exc}")
    return JSONResponse(status_code=422, content={"detail": str(exc)})


# -------------------------------------------------------------------
# Include routers
# -------------------------------------------------------------------

# Root / health routes
app.include_router(root_router)

# Transactions: listing with virtual occurrences, edits, cancellations
app.include_router(transactions_router)
