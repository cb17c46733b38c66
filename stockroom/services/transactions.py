from __future__ import annotations

from contextlib import contextmanager

from stockroom.extensions import db


@contextmanager
def atomic():
    """Run the block as one database transaction.

    Commits when the block finishes and rolls back on any exception, which is
    then re-raised for the caller.
    """

    try:
        yield db.session
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
