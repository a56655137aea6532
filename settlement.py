"""
Settlement: turn an occupied table's order into money.

All writes of one settlement go through a single storage transaction:
drink stock, the history snapshot, the daily total and the table reset
either all land or none do. Inside that transaction a drink line whose
stock cannot be taken (row gone, not enough on hand) is reported in
``failed_lines`` and skipped; the rest of the settlement carries on and the
line is still charged, since the drink was served and only the count is off.
"""

import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Callable

from errors import NotFoundError, TableStateError, ValidationError
from models import (
    DailySale, DailyTotal, DiningTable, MenuItem, OrderHistory, SodaInventory,
)
from order_lines import (
    DrinkLine, FoodLine, extras_total, lines_from_table, money, order_total,
    parse_extra, parse_quantity,
)
from table_store import FREE, OCCUPIED

logger = logging.getLogger(__name__)


@dataclass
class LineFailure:
    instance_id: str
    name: str
    reason: str


@dataclass
class SettlementResult:
    total: float
    settled_at: datetime
    food: list[dict]
    drinks: list[dict]
    table_id: int | None = None
    table_number: int | None = None
    customer: dict | None = None
    record_id: int | None = None
    failed_lines: list[LineFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed_lines

    def invoice(self) -> dict:
        """Summary handed to the printable invoice."""

        def rows(lines):
            return [
                {
                    "name": d["name"],
                    "quantity": d["quantity"],
                    "price": money(d["price"] + d.get("extra", 0.0)),
                    "note": d.get("note", ""),
                    "subtotal": money((d["price"] + d.get("extra", 0.0)) * d["quantity"]),
                }
                for d in lines
            ]

        return {
            "customer_name": (self.customer or {}).get("name"),
            "table_number": self.table_number,
            "items": rows(self.food),
            "drinks": rows(self.drinks),
            "total": self.total,
            "date": self.settled_at.isoformat(),
        }

    def to_dict(self) -> dict:
        data = asdict(self)
        data["ok"] = self.ok
        data["invoice"] = self.invoice()
        return data


def consume_stock(tx, drinks: list[DrinkLine]) -> list[LineFailure]:
    """Take each drink line off the shelf. Bad lines are reported, not raised."""
    failures = []
    for line in drinks:
        soda = tx.get(SodaInventory, line.inventory_id)
        if soda is None:
            reason = "inventory row not found"
        elif soda["quantity"] < line.quantity:
            reason = f"only {soda['quantity']} on hand, {line.quantity} ordered"
        else:
            tx.update(
                SodaInventory, soda["id"], {"quantity": soda["quantity"] - line.quantity}
            )
            continue

        logger.warning("Stock not updated for %s: %s", line.name, reason)
        failures.append(LineFailure(line.instance_id, line.name, reason))
    return failures


def add_to_daily_total(tx, day, amount: float, lines) -> dict:
    """Add ``amount`` (and the items sold) to the running total for ``day``."""
    current = tx.single(DailyTotal, date=day)
    items = dict((current or {}).get("items") or {})
    for line in lines:
        sold = dict(items.get(line.name) or {"quantity": 0, "amount": 0.0})
        sold["quantity"] += line.quantity
        sold["amount"] = money(sold["amount"] + line.subtotal)
        items[line.name] = sold

    total = money(((current or {}).get("total") or 0.0) + amount)
    return tx.upsert(DailyTotal, "date", {"date": day, "total": total, "items": items})


class SettlementService:
    def __init__(self, store, clock: Callable[[], datetime], event_log=None):
        self.store = store
        self.clock = clock
        self.event_log = event_log

    def settle(self, table_id: int, user_email: str = "") -> SettlementResult:
        """Pay and free an occupied table."""
        now = self.clock()

        with self.store.transaction() as tx:
            table = tx.get(DiningTable, table_id)
            if table is None:
                raise NotFoundError("Table", table_id)
            if table["status"] != OCCUPIED:
                raise TableStateError(f"Table {table['number']} is not occupied")

            food, drinks = lines_from_table(table)
            if not food and not drinks:
                raise ValidationError(f"Table {table['number']} has nothing to settle")

            lines = [*food, *drinks]
            total = order_total(lines)
            failures = consume_stock(tx, drinks)

            history = tx.insert(
                OrderHistory,
                {
                    "table_id": table["id"],
                    "table_number": table["number"],
                    "customer": table["customer"],
                    "food": [line.to_dict() for line in food],
                    "drinks": [line.to_dict() for line in drinks],
                    "extras": extras_total(lines),
                    "total": total,
                    "created_at": now,
                },
            )
            add_to_daily_total(tx, now.date(), total, lines)
            tx.update(
                DiningTable,
                table["id"],
                {
                    "status": FREE,
                    "customer": None,
                    "occupied_at": None,
                    "food": [],
                    "drinks": [],
                },
            )

        result = SettlementResult(
            total=total,
            settled_at=now,
            food=history["food"],
            drinks=history["drinks"],
            table_id=table["id"],
            table_number=table["number"],
            customer=table["customer"],
            record_id=history["id"],
            failed_lines=failures,
        )
        logger.info(
            "Settled table %s for %.2f (%d stock failure(s))",
            table["number"], total, len(failures),
        )
        self._log_event("TABLE_SETTLED", history["id"], user_email, result)
        return result

    def quick_bill(self, food: list[dict], drinks: list[dict],
                   customer_name: str | None = None, user_email: str = "") -> SettlementResult:
        """Counter sale with no table: ``food`` items by menu id, ``drinks`` by inventory id."""
        if not food and not drinks:
            raise ValidationError("Add at least one dish or drink to the bill")
        now = self.clock()

        with self.store.transaction() as tx:
            food_lines = [self._food_line(tx, item) for item in food]
            drink_lines = self._drink_lines(tx, drinks)

            lines = [*food_lines, *drink_lines]
            total = order_total(lines)
            failures = consume_stock(tx, drink_lines)

            sale = tx.insert(
                DailySale,
                {
                    "sale_date": now.date(),
                    "table_id": None,
                    "customer_name": (customer_name or "").strip() or None,
                    "food_items": [line.to_dict() for line in food_lines],
                    "soda_items": [line.to_dict() for line in drink_lines],
                    "total": total,
                    "created_at": now,
                },
            )
            add_to_daily_total(tx, now.date(), total, lines)

        result = SettlementResult(
            total=total,
            settled_at=now,
            food=sale["food_items"],
            drinks=sale["soda_items"],
            customer={"name": sale["customer_name"]} if sale["customer_name"] else None,
            record_id=sale["id"],
            failed_lines=failures,
        )
        logger.info("Quick bill %s for %.2f", sale["id"], total)
        self._log_event("QUICK_BILL_PAID", sale["id"], user_email, result)
        return result

    def _food_line(self, tx, item: dict) -> FoodLine:
        menu_item = tx.get(MenuItem, item.get("menu_item_id"))
        if menu_item is None:
            raise NotFoundError("Menu item", item.get("menu_item_id"))
        return FoodLine(
            menu_item_id=menu_item["id"],
            name=menu_item["name"],
            price=menu_item["price"],
            quantity=parse_quantity(item.get("quantity", 1)),
            note=(item.get("note") or "").strip(),
            extra=parse_extra(item.get("extra", 0)),
            station=menu_item["station"],
            relayed=True,
        )

    def _drink_lines(self, tx, drinks: list[dict]) -> list[DrinkLine]:
        merged: dict[int, DrinkLine] = {}
        for item in drinks:
            inventory_id = item.get("inventory_id")
            quantity = parse_quantity(item.get("quantity", 1))
            if inventory_id in merged:
                merged[inventory_id].quantity += quantity
                continue
            soda = tx.get(SodaInventory, inventory_id)
            if soda is None:
                raise NotFoundError("Drink", inventory_id)
            merged[inventory_id] = DrinkLine(
                inventory_id=soda["id"], name=soda["name"], price=soda["price"], quantity=quantity
            )
        return list(merged.values())

    def _log_event(self, event: str, record_id, user_email: str, result: SettlementResult) -> None:
        if self.event_log is None:
            return
        try:
            self.event_log.log_order_event(
                order_id=record_id,
                user_email=user_email,
                event=event,
                payload={
                    "table_number": result.table_number,
                    "total": result.total,
                    "failed_lines": [asdict(f) for f in result.failed_lines],
                },
            )
        except Exception:
            logger.exception("Order event log failed for %s %s", event, record_id)
