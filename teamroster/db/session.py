# teamroster/db/session.py
import logging
from typing import Callable, Iterator, TypeVar

from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session

from teamroster.core.errors import OpResult, RosterError, TransactionFailure
from teamroster.db.engine import SessionLocal, engine

logger = logging.getLogger(__name__)

T = TypeVar("T")


def get_db() -> Iterator[Session]:
    db = SessionLocal()
    try:
        yield db
        # services commit their own writes; this only flushes leftovers from read paths
        try:
            db.commit()
        except SQLAlchemyError:
            db.rollback()
            raise
    finally:
        try:
            db.close()
        except OperationalError:
            # underlying socket already dead; dispose pool to force fresh conns next time
            engine.dispose()


def transactional(db: Session, work: Callable[[], T], *, failure_message: str) -> OpResult[T]:
    """
    Run `work` as one unit: commit when it returns, roll back on any error.

    RosterError subclasses raised by `work` come back as the result's error.
    Anything else is logged with its traceback and reported as a
    TransactionFailure carrying only `failure_message`.
    """
    try:
        value = work()
        db.commit()
    except RosterError as exc:
        db.rollback()
        logger.info("%s: %s", failure_message, exc.message)
        return OpResult.failure(exc)
    except Exception:
        db.rollback()
        logger.exception(failure_message)
        return OpResult.failure(TransactionFailure(failure_message))
    return OpResult.success(value)
