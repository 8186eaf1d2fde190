import logging
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from backend.core.errors import ConflictError, SchedulingError, TransientStoreError
from backend.database import WRITE_LOCK_OPTIONS

logger = logging.getLogger(__name__)

SLOT_TAKEN_DETAIL = 'This time is already booked.'
STORE_UNAVAILABLE_DETAIL = 'Database unavailable. Please retry the request.'


@contextmanager
def atomic(db: Session, action: str) -> Iterator[Session]:
    """Run the block in one write transaction: commit on success, roll back on any error.

    A read transaction left open on the session is ended first, so the block
    starts from a fresh snapshot holding the write lock. A unique-index
    violation means a concurrent writer took the slot first and surfaces as
    ``ConflictError``; other store failures become ``TransientStoreError``.
    """
    try:
        if db.in_transaction():
            db.commit()
        db.connection(execution_options=WRITE_LOCK_OPTIONS)
        yield db
        db.commit()
    except SchedulingError:
        db.rollback()
        raise
    except IntegrityError as exc:
        db.rollback()
        logger.warning('%s lost a race for the same slot: %s', action, exc.orig)
        raise ConflictError(SLOT_TAKEN_DETAIL) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception('%s failed in the store', action)
        raise TransientStoreError(STORE_UNAVAILABLE_DETAIL) from exc


@contextmanager
def store_read(db: Session, action: str) -> Iterator[None]:
    try:
        yield
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception('%s failed in the store', action)
        raise TransientStoreError(STORE_UNAVAILABLE_DETAIL) from exc
