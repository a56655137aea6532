import logging
import math

from errors import NotFoundError, ValidationError
from models import MenuItem

logger = logging.getLogger(__name__)

STATIONS = ("buffet", "inside_kitchen", "outside_kitchen")


def parse_price(value) -> float:
    """Accept 9.99, "9.99", "L 9,99"."""
    if isinstance(value, str):
        value = value.strip().replace("L", "").replace(",", ".").strip()
    try:
        price = float(value)
    except (TypeError, ValueError):
        raise ValidationError("Price must be a number like 9.99")
    if not math.isfinite(price):
        raise ValidationError("Price must be a number like 9.99")
    if price < 0:
        raise ValidationError("Price must not be negative")
    return round(price, 2)


def _clean(values: dict, partial: bool = False) -> dict:
    cleaned = {}
    if "name" in values or not partial:
        name = str(values.get("name") or "").strip()
        if not name:
            raise ValidationError("Name is required.")
        cleaned["name"] = name
    if "price" in values or not partial:
        cleaned["price"] = parse_price(values.get("price"))
    if "station" in values or not partial:
        station = values.get("station") or "inside_kitchen"
        if station not in STATIONS:
            raise ValidationError(f"station must be one of {', '.join(STATIONS)}")
        cleaned["station"] = station
    return cleaned


class MenuService:
    def __init__(self, store):
        self.store = store

    def list_items(self, station: str | None = None) -> list[dict]:
        eq = {"station": station} if station else None
        return self.store.select(MenuItem, eq=eq, order_by="name")

    def grouped_by_station(self) -> dict[str, list[dict]]:
        groups = {station: [] for station in STATIONS}
        for item in self.list_items():
            groups.setdefault(item["station"], []).append(item)
        return groups

    def create_item(self, values: dict) -> dict:
        item = self.store.insert(MenuItem, _clean(values))
        logger.info("Menu item created: %s", item["name"])
        return item

    def update_item(self, item_id: int, values: dict) -> dict:
        # order lines copied this item by value, so open tables keep the old price
        return self.store.update(MenuItem, item_id, _clean(values, partial=True))

    def delete_item(self, item_id: int) -> None:
        if not self.store.delete(MenuItem, item_id):
            raise NotFoundError("Menu item", item_id)
