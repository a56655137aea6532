import logging
from datetime import datetime
from typing import Callable, Iterable

from errors import ConflictError, NotFoundError, ValidationError
from models import KitchenOrder
from order_lines import FoodLine

logger = logging.getLogger(__name__)

PENDING = "pending"
IN_PROGRESS = "in_progress"
COMPLETED = "completed"
ORDER_STATUSES = (PENDING, IN_PROGRESS, COMPLETED)

# the only moves the kitchen screen offers
NEXT_STATUS = {PENDING: IN_PROGRESS, IN_PROGRESS: COMPLETED}


def ticket_items(lines: Iterable[FoodLine]) -> list[dict]:
    return [
        {
            "name": line.name,
            "quantity": line.quantity,
            "note": line.note,
            "station": line.station,
        }
        for line in lines
    ]


class KitchenRelay:
    """Food tickets sent from the floor and worked through by the kitchen."""

    def __init__(self, store, clock: Callable[[], datetime]):
        self.store = store
        self.clock = clock

    def relay(self, table_number: int, lines: list[FoodLine], tx=None) -> dict | None:
        """Insert one pending ticket for ``lines``. Nothing is sent for an empty list."""
        if not lines:
            return None
        if tx is None:
            with self.store.transaction() as tx:
                return self.relay(table_number, lines, tx)

        order = tx.insert(
            KitchenOrder,
            {
                "table_number": table_number,
                "items": ticket_items(lines),
                "status": PENDING,
                "created_at": self.clock(),
            },
        )
        logger.info("Relayed %d dish line(s) from table %s to the kitchen", len(lines), table_number)
        return order

    def list_orders(self, status: str | None = None) -> list[dict]:
        if status is not None and status not in ORDER_STATUSES:
            raise ValidationError(f"status must be one of {', '.join(ORDER_STATUSES)}")
        eq = {"status": status} if status else None
        return self.store.select(KitchenOrder, eq=eq, order_by="created_at", descending=True)

    def set_status(self, order_id: int, status: str) -> dict:
        if status not in ORDER_STATUSES:
            raise ValidationError(f"status must be one of {', '.join(ORDER_STATUSES)}")

        with self.store.transaction() as tx:
            order = tx.get(KitchenOrder, order_id)
            if order is None:
                raise NotFoundError("Kitchen order", order_id)
            if NEXT_STATUS.get(order["status"]) != status:
                raise ConflictError(
                    f"Kitchen order {order_id} cannot go from {order['status']} to {status}"
                )
            return tx.update(
                KitchenOrder, order_id, {"status": status, "updated_at": self.clock()}
            )

    def advance(self, order_id: int) -> dict:
        order = self.store.get(KitchenOrder, order_id)
        if order is None:
            raise NotFoundError("Kitchen order", order_id)
        if order["status"] not in NEXT_STATUS:
            raise ConflictError(f"Kitchen order {order_id} is already {order['status']}")
        return self.set_status(order_id, NEXT_STATUS[order["status"]])

    def subscribe(self, callback):
        """Call ``callback`` on every change to the orders table."""
        return self.store.feed.subscribe(KitchenOrder.__tablename__, callback)
