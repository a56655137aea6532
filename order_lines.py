"""
Order lines held on a table while it is occupied.

A line is either a ``FoodLine`` (a dish copied from the menu) or a
``DrinkLine`` (a drink copied from the soda inventory). Both carry their own
``instance_id`` so any line can be removed by id, and both copy name and
price by value: later menu or inventory edits never change an open order or
a settled one.
"""

import math
import uuid
from dataclasses import asdict, dataclass, field
from typing import Iterable, Union

from errors import ValidationError
from menu import STATIONS, parse_price

FOOD = "food"
DRINK = "drink"


def new_instance_id() -> str:
    return uuid.uuid4().hex


def money(amount: float) -> float:
    return round(float(amount), 2)


def parse_quantity(value) -> int:
    if isinstance(value, bool):
        raise ValidationError("quantity must be a positive integer")
    try:
        quantity = int(value)
    except (TypeError, ValueError, OverflowError):
        raise ValidationError("quantity must be a positive integer")
    if quantity <= 0 or quantity != float(value):
        raise ValidationError("quantity must be a positive integer")
    return quantity


def parse_extra(value) -> float:
    try:
        extra = float(value or 0)
    except (TypeError, ValueError):
        raise ValidationError("extra must be a number")
    if not math.isfinite(extra):
        raise ValidationError("extra must be a number")
    if extra < 0:
        raise ValidationError("extra must not be negative")
    return money(extra)


def _row_id(value, field_name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{field_name} must be an integer id")
    return value


def _text(value, field_name: str, required: bool = False) -> str:
    if value is None:
        value = ""
    if not isinstance(value, str):
        raise ValidationError(f"{field_name} must be text")
    value = value.strip()
    if required and not value:
        raise ValidationError(f"{field_name} is required")
    return value


@dataclass
class FoodLine:
    menu_item_id: int
    name: str
    price: float
    quantity: int = 1
    note: str = ""
    extra: float = 0.0
    station: str = "inside_kitchen"
    relayed: bool = False
    instance_id: str = field(default_factory=new_instance_id)

    kind = FOOD

    def __post_init__(self):
        self.menu_item_id = _row_id(self.menu_item_id, "menu_item_id")
        self.name = _text(self.name, "name", required=True)
        self.price = parse_price(self.price)
        self.quantity = parse_quantity(self.quantity)
        self.note = _text(self.note, "note")
        self.extra = parse_extra(self.extra)
        if self.station not in STATIONS:
            raise ValidationError(f"station must be one of {', '.join(STATIONS)}")
        if not isinstance(self.relayed, bool):
            raise ValidationError("relayed must be true or false")
        self.instance_id = _text(self.instance_id, "instance_id", required=True)

    @property
    def subtotal(self) -> float:
        return money((self.price + self.extra) * self.quantity)

    def to_dict(self) -> dict:
        data = asdict(self)
        data["kind"] = FOOD
        return data


@dataclass
class DrinkLine:
    inventory_id: int
    name: str
    price: float
    quantity: int = 1
    instance_id: str = field(default_factory=new_instance_id)

    kind = DRINK
    extra = 0.0

    def __post_init__(self):
        self.inventory_id = _row_id(self.inventory_id, "inventory_id")
        self.name = _text(self.name, "name", required=True)
        self.price = parse_price(self.price)
        self.quantity = parse_quantity(self.quantity)
        self.instance_id = _text(self.instance_id, "instance_id", required=True)

    @property
    def subtotal(self) -> float:
        return money(self.price * self.quantity)

    def to_dict(self) -> dict:
        data = asdict(self)
        data["kind"] = DRINK
        return data


OrderLine = Union[FoodLine, DrinkLine]


def line_from_dict(data: dict) -> OrderLine:
    if not isinstance(data, dict):
        raise ValidationError("An order line must be an object")
    data = dict(data)
    kind = data.pop("kind", None)
    try:
        if kind == FOOD:
            return FoodLine(**data)
        if kind == DRINK:
            return DrinkLine(**data)
    except TypeError as e:
        raise ValidationError(f"Invalid {kind} line: {e}")
    raise ValidationError(f"Unknown order line kind: {kind!r}")


def lines_from_table(table: dict) -> tuple[list[FoodLine], list[DrinkLine]]:
    food = [line_from_dict(d) for d in table.get("food") or []]
    drinks = [line_from_dict(d) for d in table.get("drinks") or []]
    return food, drinks


def order_total(lines: Iterable[OrderLine]) -> float:
    """sum((price + extra) * quantity) over every line, rounded to cents."""
    return money(sum((line.price + line.extra) * line.quantity for line in lines))


def extras_total(lines: Iterable[OrderLine]) -> float:
    return money(sum(line.extra * line.quantity for line in lines))
