import logging

from errors import NotFoundError, TableStateError
from models import DiningTable, MenuItem, SodaInventory
from order_lines import (
    DrinkLine, FoodLine, OrderLine, lines_from_table, order_total, parse_extra, parse_quantity,
)
from table_store import OCCUPIED

logger = logging.getLogger(__name__)


class OrderEditor:
    """
    Pending order of one occupied table.

    Lines accumulate locally; ``save()`` writes them back to the table and
    relays dishes the kitchen has not seen yet.
    """

    def __init__(self, tables, kitchen, table_id: int):
        self.tables = tables
        self.kitchen = kitchen
        self.store = tables.store
        self.table = tables.get_table(table_id)
        if self.table["status"] != OCCUPIED:
            raise TableStateError(f"Table {self.table['number']} is not occupied")
        self.food, self.drinks = lines_from_table(self.table)

    @property
    def lines(self) -> list[OrderLine]:
        return [*self.food, *self.drinks]

    @property
    def total(self) -> float:
        return order_total(self.lines)

    def add_dish(self, menu_item_id: int, quantity=1, note: str = "", extra=0.0) -> FoodLine:
        """Every call adds its own line, even for a dish already on the order."""
        quantity = parse_quantity(quantity)
        extra = parse_extra(extra)
        item = self.store.get(MenuItem, menu_item_id)
        if item is None:
            raise NotFoundError("Menu item", menu_item_id)

        line = FoodLine(
            menu_item_id=item["id"],
            name=item["name"],
            price=item["price"],
            quantity=quantity,
            note=(note or "").strip(),
            extra=extra,
            station=item["station"],
        )
        self.food.append(line)
        return line

    def add_drink(self, inventory_id: int, quantity=1) -> DrinkLine:
        """Drinks merge into the existing line for the same inventory row."""
        quantity = parse_quantity(quantity)
        for line in self.drinks:
            if line.inventory_id == inventory_id:
                line.quantity += quantity
                return line

        soda = self.store.get(SodaInventory, inventory_id)
        if soda is None:
            raise NotFoundError("Drink", inventory_id)
        if soda["quantity"] < quantity:
            logger.warning(
                "Table %s ordered %d %s with only %d on hand",
                self.table["number"], quantity, soda["name"], soda["quantity"],
            )

        line = DrinkLine(
            inventory_id=soda["id"],
            name=soda["name"],
            price=soda["price"],
            quantity=quantity,
        )
        self.drinks.append(line)
        return line

    def remove_line(self, instance_id: str) -> OrderLine:
        for lines in (self.food, self.drinks):
            for i, line in enumerate(lines):
                if line.instance_id == instance_id:
                    return lines.pop(i)
        raise NotFoundError("Order line", instance_id)

    def save(self) -> dict:
        """Write the lines to the table and relay new dishes in one transaction."""
        unsent = [line for line in self.food if not line.relayed]

        with self.store.transaction() as tx:
            current = tx.get(DiningTable, self.table["id"])
            if current is None:
                raise NotFoundError("Table", self.table["id"])
            if current["status"] != OCCUPIED:
                raise TableStateError(f"Table {current['number']} is no longer occupied")

            self.kitchen.relay(current["number"], unsent, tx=tx)
            self.table = self.tables.update_table(
                current["id"],
                {
                    "food": [{**line.to_dict(), "relayed": True} for line in self.food],
                    "drinks": [line.to_dict() for line in self.drinks],
                },
                tx=tx,
            )
        for line in unsent:
            line.relayed = True
        return self.table
