# Overview: Transaction scope and row locking shared by every multi-statement workflow.

from __future__ import annotations

from contextlib import contextmanager

from sqlalchemy.exc import IntegrityError

from ..errors import ConflictError
from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


@contextmanager
def atomic():
    """
    Run a block as one unit of work on the request-scoped session.

    Commits when the block exits normally; rolls back on any exception and
    re-raises it. Constraint violations surface as ConflictError. Nothing here
    retries: a failed unit must be re-issued by the caller.

    Code running inside the block must only flush, never commit.
    """
    session = db.session
    try:
        yield session
        session.commit()
    except IntegrityError as exc:
        session.rollback()
        raise ConflictError(
            "Operation violates a data constraint",
            details={"constraint": str(getattr(exc, "orig", exc))},
        ) from exc
    except BaseException:
        session.rollback()
        raise
