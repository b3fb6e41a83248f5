"""
Persistence gateway — the single place the workflow engine commits through.

The engine mutates ORM objects in memory, then calls ``gateway.commit()``.
A failed commit rolls the session back before raising, so the identity map
never stays ahead of the database:

    StaleDataError   -> ConflictError    (someone else wrote the row first)
    IntegrityError   -> PersistenceError (retryable=False)
    other DB errors  -> PersistenceError (retryable=True)
"""

import logging

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from propman.core.exceptions import ConflictError, PersistenceError
from propman.models import db

logger = logging.getLogger(__name__)


class PersistenceGateway:
    """Thin wrapper around the Flask-SQLAlchemy session."""

    def __init__(self, session=None):
        self._session = session

    @property
    def session(self):
        return self._session if self._session is not None else db.session

    def save(self, entity):
        """Stage a new entity for insert."""
        self.session.add(entity)
        return entity

    def update(self, entity):
        """Stage changes on an existing entity (no-op if already attached)."""
        self.session.add(entity)
        return entity

    def commit(self):
        try:
            self.session.commit()
        except StaleDataError as exc:
            self.session.rollback()
            logger.warning("Optimistic lock conflict on commit: %s", exc)
            raise ConflictError(
                "The record was modified by another request. Reload and try again.",
            ) from exc
        except IntegrityError as exc:
            self.session.rollback()
            logger.warning("Integrity error on commit: %s", exc.orig)
            raise PersistenceError("Duplicate or constraint violation", retryable=False) from exc
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.exception("Database error on commit")
            raise PersistenceError("Database error; the change was not saved") from exc

    def rollback(self):
        self.session.rollback()


gateway = PersistenceGateway()
