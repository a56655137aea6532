import logging

from errors import NotFoundError, ValidationError
from menu import parse_price
from models import SodaInventory

logger = logging.getLogger(__name__)


def _quantity(value) -> int:
    if isinstance(value, bool):
        raise ValidationError("Quantity must be a whole number")
    try:
        quantity = int(value)
    except (TypeError, ValueError, OverflowError):
        raise ValidationError("Quantity must be a whole number")
    if quantity < 0 or quantity != float(value):
        raise ValidationError("Quantity must be a whole number, zero or more")
    return quantity


def _clean(values: dict, partial: bool = False) -> dict:
    cleaned = {}
    if "name" in values or not partial:
        name = str(values.get("name") or "").strip()
        if not name:
            raise ValidationError("Name is required.")
        cleaned["name"] = name
    if "brand" in values:
        cleaned["brand"] = (values.get("brand") or "").strip() or None
    if "quantity" in values or not partial:
        cleaned["quantity"] = _quantity(values.get("quantity", 0))
    if "price" in values or not partial:
        cleaned["price"] = parse_price(values.get("price"))
    return cleaned


class InventoryService:
    """Drink stock. Settlement takes stock off through its own transaction."""

    def __init__(self, store, low_threshold: int = 10, critical_threshold: int = 5):
        self.store = store
        self.low_threshold = low_threshold
        self.critical_threshold = critical_threshold

    def list_drinks(self) -> list[dict]:
        return self.store.select(SodaInventory, order_by="name")

    def get_drink(self, drink_id: int) -> dict:
        drink = self.store.get(SodaInventory, drink_id)
        if drink is None:
            raise NotFoundError("Drink", drink_id)
        return drink

    def add_drink(self, values: dict) -> dict:
        drink = self.store.insert(SodaInventory, _clean(values))
        logger.info("Drink added: %s x%d", drink["name"], drink["quantity"])
        return drink

    def update_drink(self, drink_id: int, values: dict) -> dict:
        return self.store.update(SodaInventory, drink_id, _clean(values, partial=True))

    def restock(self, drink_id: int, amount) -> dict:
        amount = _quantity(amount)
        with self.store.transaction() as tx:
            drink = tx.get(SodaInventory, drink_id)
            if drink is None:
                raise NotFoundError("Drink", drink_id)
            return tx.update(SodaInventory, drink_id, {"quantity": drink["quantity"] + amount})

    def delete_drink(self, drink_id: int) -> None:
        if not self.store.delete(SodaInventory, drink_id):
            raise NotFoundError("Drink", drink_id)

    def alerts(self) -> dict:
        """Drinks running low (under the low threshold) and critical (at or under critical)."""
        low_rows = self.store.select(
            SodaInventory, lt={"quantity": self.low_threshold}, order_by="quantity"
        )
        critical = [d for d in low_rows if d["quantity"] <= self.critical_threshold]
        low = [d for d in low_rows if d["quantity"] > self.critical_threshold]
        return {"low": low, "critical": critical}

    def subscribe(self, callback):
        return self.store.feed.subscribe(SodaInventory.__tablename__, callback)
