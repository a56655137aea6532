"""
Generic data-access layer over the SQLAlchemy models.

Services never touch sessions directly: they call ``Store`` for single
operations, or open ``Store.transaction()`` when several writes must land
together (settlement, quick billing). Rows go in and come out as plain
dicts keyed by column name.
"""

import copy
import logging
from contextlib import contextmanager
from typing import Any, Iterator

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from errors import BackendError, ConflictError, NotFoundError
from realtime import DELETE, INSERT, UPDATE, ChangeEvent, ChangeFeed

logger = logging.getLogger(__name__)


def _row(obj) -> dict:
    return copy.deepcopy(obj.to_dict())


def _check_columns(model, values: dict) -> None:
    columns = model.__table__.columns.keys()
    unknown = [k for k in values if k not in columns]
    if unknown:
        raise ValueError(f"{model.__tablename__} has no column(s): {', '.join(unknown)}")


class UnitOfWork:
    """All operations share one session; nothing is visible until commit."""

    def __init__(self, session):
        self.session = session
        self.events: list[ChangeEvent] = []

    def _statement(self, model, eq=None, gte=None, lte=None, lt=None,
                   order_by=None, descending=False):
        stmt = select(model)
        for name, value in (eq or {}).items():
            stmt = stmt.where(getattr(model, name) == value)
        for name, value in (gte or {}).items():
            stmt = stmt.where(getattr(model, name) >= value)
        for name, value in (lte or {}).items():
            stmt = stmt.where(getattr(model, name) <= value)
        for name, value in (lt or {}).items():
            stmt = stmt.where(getattr(model, name) < value)
        if order_by:
            column = getattr(model, order_by)
            stmt = stmt.order_by(column.desc() if descending else column.asc())
        return stmt

    def select(self, model, **filters) -> list[dict]:
        stmt = self._statement(model, **filters)
        return [_row(obj) for obj in self.session.scalars(stmt)]

    def get(self, model, row_id) -> dict | None:
        obj = self.session.get(model, row_id)
        return _row(obj) if obj is not None else None

    def single(self, model, **eq) -> dict | None:
        obj = self.session.scalars(self._statement(model, eq=eq)).first()
        return _row(obj) if obj is not None else None

    def insert(self, model, values: dict) -> dict:
        _check_columns(model, values)
        obj = model(**values)
        self.session.add(obj)
        self.session.flush()
        row = _row(obj)
        self.events.append(ChangeEvent(model.__tablename__, INSERT, row))
        return row

    def update(self, model, row_id, values: dict) -> dict:
        _check_columns(model, values)
        obj = self.session.get(model, row_id)
        if obj is None:
            raise NotFoundError(model.__tablename__, row_id)
        for name, value in values.items():
            setattr(obj, name, value)
        self.session.flush()
        row = _row(obj)
        self.events.append(ChangeEvent(model.__tablename__, UPDATE, row))
        return row

    def delete(self, model, row_id) -> bool:
        obj = self.session.get(model, row_id)
        if obj is None:
            return False
        row = _row(obj)
        self.session.delete(obj)
        self.session.flush()
        self.events.append(ChangeEvent(model.__tablename__, DELETE, row))
        return True

    def upsert(self, model, key: str, values: dict) -> dict:
        """Insert, or update the row whose ``key`` column matches ``values[key]``."""
        _check_columns(model, values)
        obj = self.session.scalars(
            select(model).where(getattr(model, key) == values[key])
        ).first()
        if obj is None:
            return self.insert(model, values)
        return self.update(model, obj.id, values)


class Store:
    def __init__(self, session_factory, feed: ChangeFeed | None = None):
        self._session_factory = session_factory
        self.feed = feed or ChangeFeed()

    @contextmanager
    def transaction(self) -> Iterator[UnitOfWork]:
        session = self._session_factory()
        uow = UnitOfWork(session)
        try:
            yield uow
            session.commit()
        except IntegrityError as e:
            session.rollback()
            logger.warning("Storage constraint violated: %s", e.orig)
            raise ConflictError("Row conflicts with an existing record") from e
        except SQLAlchemyError as e:
            session.rollback()
            logger.error("Storage call failed: %s", e)
            raise BackendError(f"Storage call failed ({e.__class__.__name__})") from e
        except BaseException:
            session.rollback()
            raise
        finally:
            session.close()

        for event in uow.events:
            self.feed.publish(event)

    def select(self, model, **filters) -> list[dict]:
        with self.transaction() as tx:
            return tx.select(model, **filters)

    def get(self, model, row_id) -> dict | None:
        with self.transaction() as tx:
            return tx.get(model, row_id)

    def single(self, model, **eq: Any) -> dict | None:
        with self.transaction() as tx:
            return tx.single(model, **eq)

    def insert(self, model, values: dict) -> dict:
        with self.transaction() as tx:
            return tx.insert(model, values)

    def update(self, model, row_id, values: dict) -> dict:
        with self.transaction() as tx:
            return tx.update(model, row_id, values)

    def delete(self, model, row_id) -> bool:
        with self.transaction() as tx:
            return tx.delete(model, row_id)

    def upsert(self, model, key: str, values: dict) -> dict:
        with self.transaction() as tx:
            return tx.upsert(model, key, values)
