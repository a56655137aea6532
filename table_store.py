import logging
from datetime import datetime
from typing import Callable

from errors import ConflictError, NotFoundError, ValidationError
from models import DiningTable
from order_lines import DRINK, FOOD, line_from_dict

logger = logging.getLogger(__name__)

FREE = "free"
OCCUPIED = "occupied"
RESERVED = "reserved"
STATUSES = (FREE, OCCUPIED, RESERVED)
SHAPES = ("round", "square", "rect")

UPDATABLE_FIELDS = {
    "number", "capacity", "shape", "status", "customer", "occupied_at", "food", "drinks",
}


def _positive_int(value, field_name: str) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError, OverflowError):
        raise ValidationError(f"{field_name} must be a positive integer")
    if isinstance(value, bool) or number <= 0 or number != float(value):
        raise ValidationError(f"{field_name} must be a positive integer")
    return number


def _clean_customer(customer, capacity: int) -> dict:
    if not isinstance(customer, dict):
        raise ValidationError("An occupied or reserved table needs a customer")
    name = str(customer.get("name") or "").strip()
    if not name:
        raise ValidationError("Customer name is required")
    party_size = _positive_int(customer.get("party_size", 1), "party_size")
    if party_size > capacity:
        raise ValidationError(f"Party of {party_size} does not fit a table for {capacity}")
    return {"name": name, "party_size": party_size}


def _clean_lines(lines, field_name: str, kind: str) -> list[dict]:
    if not isinstance(lines, list):
        raise ValidationError(f"{field_name} must be a list of order lines")
    cleaned = []
    for data in lines:
        line = line_from_dict(data)
        if line.kind != kind:
            raise ValidationError(f"{field_name} only takes {kind} lines")
        cleaned.append(line.to_dict())
    return cleaned


def apply_table_update(table: dict, changes: dict, now: datetime) -> dict:
    """
    Merge ``changes`` into ``table`` and return the column values to write.

    Going to ``free`` always drops the customer, the timestamp and both
    order lists. Going to ``occupied`` from another status stamps
    ``occupied_at`` unless the caller supplied one.
    """
    unknown = set(changes) - UPDATABLE_FIELDS
    if unknown:
        raise ValidationError(f"Cannot update field(s): {', '.join(sorted(unknown))}")

    merged = {**table, **changes}
    values = {k: merged[k] for k in UPDATABLE_FIELDS}

    values["number"] = _positive_int(values["number"], "number")
    values["capacity"] = _positive_int(values["capacity"], "capacity")
    if values["shape"] not in SHAPES:
        raise ValidationError(f"shape must be one of {', '.join(SHAPES)}")

    status = values["status"]
    if status not in STATUSES:
        raise ValidationError(f"status must be one of {', '.join(STATUSES)}")

    if status == FREE:
        values.update(customer=None, occupied_at=None, food=[], drinks=[])
        return values

    values["customer"] = _clean_customer(values["customer"], values["capacity"])
    values["food"] = _clean_lines(values["food"] or [], "food", FOOD)
    values["drinks"] = _clean_lines(values["drinks"] or [], "drinks", DRINK)

    if isinstance(values["occupied_at"], str):
        try:
            values["occupied_at"] = datetime.fromisoformat(values["occupied_at"])
        except ValueError:
            raise ValidationError("occupied_at must be an ISO timestamp")

    if status == OCCUPIED:
        if "occupied_at" not in changes and table.get("status") != OCCUPIED:
            values["occupied_at"] = now
        elif values["occupied_at"] is None:
            values["occupied_at"] = now
    else:
        values["occupied_at"] = None
    return values


class TableStore:
    """Physical tables on the floor. Every mutation is written straight through."""

    def __init__(self, store, clock: Callable[[], datetime]):
        self.store = store
        self.clock = clock

    def list_tables(self) -> list[dict]:
        return self.store.select(DiningTable, order_by="number")

    def get_table(self, table_id: int) -> dict:
        table = self.store.get(DiningTable, table_id)
        if table is None:
            raise NotFoundError("Table", table_id)
        return table

    def next_number(self) -> int:
        tables = self.store.select(DiningTable, order_by="number", descending=True)
        return tables[0]["number"] + 1 if tables else 1

    def create_table(self, number=None, capacity=None, shape: str = "round") -> dict:
        if number is None:
            number = self.next_number()
        number = _positive_int(number, "number")
        capacity = _positive_int(capacity, "capacity")
        if shape not in SHAPES:
            raise ValidationError(f"shape must be one of {', '.join(SHAPES)}")

        with self.store.transaction() as tx:
            if tx.single(DiningTable, number=number):
                raise ConflictError(f"Table number {number} already exists")
            table = tx.insert(
                DiningTable,
                {
                    "number": number,
                    "capacity": capacity,
                    "shape": shape,
                    "status": FREE,
                    "customer": None,
                    "occupied_at": None,
                    "food": [],
                    "drinks": [],
                },
            )
        logger.info("Created table %s (capacity %s)", number, capacity)
        return table

    def update_table(self, table_id: int, changes: dict, tx=None) -> dict:
        """Merge a partial update into one table. Pass ``tx`` to join a running transaction."""
        if tx is None:
            with self.store.transaction() as tx:
                return self.update_table(table_id, changes, tx)

        table = tx.get(DiningTable, table_id)
        if table is None:
            raise NotFoundError("Table", table_id)

        values = apply_table_update(table, changes, self.clock())
        if values["number"] != table["number"] and tx.single(
            DiningTable, number=values["number"]
        ):
            raise ConflictError(f"Table number {values['number']} already exists")
        return tx.update(DiningTable, table_id, values)

    def delete_table(self, table_id: int) -> None:
        if not self.store.delete(DiningTable, table_id):
            raise NotFoundError("Table", table_id)
        logger.info("Deleted table id=%s", table_id)

    def summary(self) -> dict:
        tables = self.list_tables()
        counts = {status: 0 for status in STATUSES}
        for t in tables:
            counts[t["status"]] = counts.get(t["status"], 0) + 1

        seats = sum(t["capacity"] for t in tables)
        guests = sum(
            (t["customer"] or {}).get("party_size", 0)
            for t in tables
            if t["status"] == OCCUPIED
        )
        return {
            "tables": len(tables),
            "free": counts[FREE],
            "occupied": counts[OCCUPIED],
            "reserved": counts[RESERVED],
            "seats": seats,
            "guests": guests,
            "occupancy": round(counts[OCCUPIED] / len(tables), 2) if tables else 0.0,
        }
