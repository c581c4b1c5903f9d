"""
Change Order Store: repository abstraction for StoredChangeOrder records.

Implementations:
    InMemoryChangeOrderStore   dict keyed by id; state is lost on restart
    SqlChangeOrderStore        Flask-SQLAlchemy JSON document table

The store is constructed by the application factory (see build_store) and
injected into ChangeOrderLifecycle; there is no module-level state. The store
returns list_all() in creation order; views sort by created_at and rely on
that order to break ties.

No locking: each write replaces the whole record, last write wins.
"""

from __future__ import annotations

import copy
import logging
from abc import ABC, abstractmethod

from app.models import db
from app.models.change_order import ChangeOrderDocument, StoredChangeOrder

logger = logging.getLogger(__name__)


class ChangeOrderStore(ABC):
    """create / find_by_id / update / list_all over StoredChangeOrder."""

    @abstractmethod
    def create(self, record: StoredChangeOrder) -> StoredChangeOrder:
        ...

    @abstractmethod
    def find_by_id(self, change_order_id: str) -> StoredChangeOrder | None:
        ...

    @abstractmethod
    def update(self, change_order_id: str, record: StoredChangeOrder) -> StoredChangeOrder | None:
        """Replace the stored record. Returns None when the id is unknown."""

    @abstractmethod
    def list_all(self) -> list[StoredChangeOrder]:
        """Every record, oldest created first."""


class InMemoryChangeOrderStore(ChangeOrderStore):
    """Process-local store. Returns copies so callers cannot mutate stored state."""

    def __init__(self):
        self._records: dict[str, StoredChangeOrder] = {}

    def create(self, record: StoredChangeOrder) -> StoredChangeOrder:
        self._records[record.id] = copy.deepcopy(record)
        return copy.deepcopy(record)

    def find_by_id(self, change_order_id: str) -> StoredChangeOrder | None:
        record = self._records.get(change_order_id)
        return copy.deepcopy(record) if record else None

    def update(self, change_order_id: str, record: StoredChangeOrder) -> StoredChangeOrder | None:
        if change_order_id not in self._records:
            return None
        self._records[change_order_id] = copy.deepcopy(record)
        return copy.deepcopy(record)

    def list_all(self) -> list[StoredChangeOrder]:
        return [copy.deepcopy(r) for r in self._records.values()]

    def clear(self) -> None:
        self._records.clear()

    def __len__(self):
        return len(self._records)


class SqlChangeOrderStore(ChangeOrderStore):
    """Store backed by the ``change_orders`` table. Requires an app context.

    Each write commits immediately: the lifecycle service treats every
    mutation as atomic from its own point of view.
    """

    def create(self, record: StoredChangeOrder) -> StoredChangeOrder:
        last_seq = db.session.query(db.func.max(ChangeOrderDocument.seq)).scalar()
        row = ChangeOrderDocument(id=record.id, seq=(last_seq or 0) + 1)
        row.apply(record)
        db.session.add(row)
        db.session.commit()
        return row.to_record()

    def find_by_id(self, change_order_id: str) -> StoredChangeOrder | None:
        row = db.session.get(ChangeOrderDocument, change_order_id)
        return row.to_record() if row else None

    def update(self, change_order_id: str, record: StoredChangeOrder) -> StoredChangeOrder | None:
        row = db.session.get(ChangeOrderDocument, change_order_id)
        if not row:
            return None
        row.apply(record)
        db.session.commit()
        return row.to_record()

    def list_all(self) -> list[StoredChangeOrder]:
        rows = ChangeOrderDocument.query.order_by(ChangeOrderDocument.seq).all()
        return [row.to_record() for row in rows]


STORE_BACKENDS = {
    "memory": InMemoryChangeOrderStore,
    "sql": SqlChangeOrderStore,
}


def build_store(backend: str) -> ChangeOrderStore:
    """Instantiate the configured backend ("memory" or "sql")."""
    try:
        store_cls = STORE_BACKENDS[backend]
    except KeyError:
        raise ValueError(
            f"Unknown CHANGE_ORDER_STORE {backend!r}; expected one of {sorted(STORE_BACKENDS)}"
        ) from None
    logger.info("Change order store: %s", store_cls.__name__)
    return store_cls()
