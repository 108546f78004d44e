import logging
from typing import Callable, Optional, TypeVar

from fastapi import Request
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.exc import DBAPIError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from shared.core.deadline import Deadline

logger = logging.getLogger(__name__)

Base = declarative_base()

T = TypeVar("T")

# SQLSTATE codes PostgreSQL raises when a serializable transaction loses a race
SERIALIZATION_FAILURE_CODES = {"40001", "40P01"}


def build_engine(settings) -> Engine:
    uri = settings.DB_URI
    if uri.startswith("sqlite"):
        return create_engine(
            uri,
            connect_args={"check_same_thread": False},
            isolation_level="SERIALIZABLE",
        )

    return create_engine(
        uri,
        pool_pre_ping=True,
        pool_recycle=300,
        pool_size=settings.DB_POOL_SIZE,
        max_overflow=settings.DB_MAX_OVERFLOW,
        pool_timeout=settings.DB_POOL_TIMEOUT,
        isolation_level="SERIALIZABLE",
    )


def build_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


# Dependency
def get_db(request: Request):
    db = request.app.state.session_factory()
    try:
        yield db
    finally:
        db.close()


def is_serialization_failure(exc: DBAPIError) -> bool:
    orig = getattr(exc, "orig", None)
    if getattr(orig, "pgcode", None) in SERIALIZATION_FAILURE_CODES:
        return True
    return "database is locked" in str(orig or exc).lower()


def run_in_transaction(
    db: Session,
    work: Callable[[Session], T],
    retries: int = 3,
    deadline: Optional[Deadline] = None,
) -> T:
    """
    Run work(db) and commit it as one transaction.

    Any exception rolls the session back. Serialization failures are retried
    up to `retries` times with a fresh attempt of `work`; everything else is
    re-raised unchanged.
    """
    attempt = 0
    while True:
        attempt += 1
        try:
            if deadline:
                deadline.check()
            result = work(db)
            if deadline:
                deadline.check()
            db.commit()
            return result
        except DBAPIError as exc:
            db.rollback()
            if is_serialization_failure(exc) and attempt <= retries:
                logger.warning("Serialization failure on attempt %s, retrying", attempt)
                continue
            raise
        except Exception:
            db.rollback()
            raise
