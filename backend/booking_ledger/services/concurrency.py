# Overview: Transaction, locking and retry helpers shared by every write path.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy import text
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import PersistenceFailure
from ..extensions import db


def lock_for_update(query, of=None):
    """
    Apply row-level locking for critical operations.

    Pass the locked model as `of` when it has joined eager loads:
    PostgreSQL refuses FOR UPDATE on the nullable side of an outer join.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; begin_write() takes the
    database write lock up front instead.
    """
    return query.with_for_update(of=of)


def begin_write() -> None:
    """
    Start the unit of work with the write lock held on SQLite.

    Other backends rely on the row locks taken by lock_for_update.
    """
    if db.engine.dialect.name == "sqlite" and not db.session.new and not db.session.dirty:
        db.session.execute(text("BEGIN IMMEDIATE"))


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float = 0.1):
    """
    Execute one unit of work atomically with retry on concurrency failures.

    - Any exception rolls the session back, so callers never observe a
      partial write.
    - OperationalError (locks, deadlocks, timeouts) and StaleDataError
      (optimistic version conflicts) are retried with exponential backoff;
      once exhausted they surface as a retryable PersistenceFailure.
    - Other database errors become PersistenceFailure immediately.
    - Domain errors propagate unchanged.
    """
    if attempts is None:
        attempts = current_app.config.get("WRITE_RETRY_ATTEMPTS", 3)

    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                current_app.logger.warning("Write failed after %d attempts: %s", attempts, exc)
                raise PersistenceFailure(
                    "Store busy or unavailable; nothing was saved, please retry",
                    details={"attempts": attempts},
                ) from exc
            current_app.logger.info("Retrying write after concurrency failure (attempt %d): %s", attempt + 1, exc)
            time.sleep(backoff_base * (2 ** attempt))
        except SQLAlchemyError as exc:
            db.session.rollback()
            current_app.logger.exception("Write aborted by database error")
            raise PersistenceFailure("Store error; nothing was saved, please retry") from exc
        except Exception:
            db.session.rollback()
            raise
