from contextlib import contextmanager
from typing import Iterator

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from bakery.errors import PersistenceError
from bakery.utils.logs import get_logger

log = get_logger("db")


@contextmanager
def persistence_errors(session: Session, action: str) -> Iterator:
    """
    Translate SQLAlchemy failures inside the block into PersistenceError.
    The session is rolled back and the driver detail is logged, not shown.
    """
    try:
        yield
    except SQLAlchemyError as e:
        session.rollback()
        log.error(f"{action} failed: {type(e).__name__}: {e}")
        raise PersistenceError(detail=f"{action}: {e}") from e
