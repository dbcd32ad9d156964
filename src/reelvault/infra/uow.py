"""
Unit of Work boundary for ReelVault catalog writes.

Provides the same transaction semantics for CLI operations, the sync job and
API requests.
"""

from __future__ import annotations

import contextlib
from collections.abc import Callable, Generator

from sqlalchemy.orm import Session

from .db import SessionLocal


@contextlib.contextmanager
def session(factory: Callable[[], Session] | None = None) -> Generator[Session, None, None]:
    """
    Database session context manager.

    Provides Unit of Work semantics:
    - Opens a DB session
    - Yields it for use
    - On success: commits the transaction
    - On exception: rolls back and re-raises the exception
    - Always closes the session

    Usage:
        with session() as db:
            db.add(video)
    """
    db = (factory or SessionLocal)()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
