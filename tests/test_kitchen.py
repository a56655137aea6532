"""
Tests for kitchen tickets.
"""

import pytest

from errors import ConflictError, NotFoundError, ValidationError
from order_lines import FoodLine


def _lines():
    return [
        FoodLine(menu_item_id=1, name="Burger", price=10.0, quantity=2, note="no onion"),
        FoodLine(menu_item_id=2, name="Salad", price=6.0, station="buffet"),
    ]


class TestRelay:
    def test_relay_creates_pending_ticket(self, services, clock):
        order = services.kitchen.relay(7, _lines())

        assert order["table_number"] == 7
        assert order["status"] == "pending"
        assert order["created_at"] == clock.now
        assert order["items"] == [
            {"name": "Burger", "quantity": 2, "note": "no onion", "station": "inside_kitchen"},
            {"name": "Salad", "quantity": 1, "note": "", "station": "buffet"},
        ]

    def test_nothing_to_relay(self, services):
        assert services.kitchen.relay(7, []) is None
        assert services.kitchen.list_orders() == []


class TestStatus:
    def test_advance_through_the_kitchen(self, services, clock):
        order = services.kitchen.relay(3, _lines())

        clock.advance(minutes=2)
        started = services.kitchen.advance(order["id"])
        assert started["status"] == "in_progress"
        assert started["updated_at"] == clock.now

        done = services.kitchen.advance(order["id"])
        assert done["status"] == "completed"

        with pytest.raises(ConflictError):
            services.kitchen.advance(order["id"])

    def test_status_cannot_skip_steps(self, services):
        order = services.kitchen.relay(3, _lines())
        with pytest.raises(ConflictError):
            services.kitchen.set_status(order["id"], "completed")
        with pytest.raises(ValidationError):
            services.kitchen.set_status(order["id"], "burnt")

    def test_filter_by_status(self, services, clock):
        first = services.kitchen.relay(1, _lines())
        clock.advance(minutes=1)
        services.kitchen.relay(2, _lines())
        services.kitchen.advance(first["id"])

        assert [o["table_number"] for o in services.kitchen.list_orders("pending")] == [2]
        assert [o["table_number"] for o in services.kitchen.list_orders("in_progress")] == [1]
        assert [o["table_number"] for o in services.kitchen.list_orders()] == [2, 1]
        with pytest.raises(ValidationError):
            services.kitchen.list_orders("lost")

    def test_missing_order(self, services):
        with pytest.raises(NotFoundError):
            services.kitchen.advance(42)


class TestSubscribe:
    def test_kitchen_screen_sees_new_and_changed_tickets(self, services):
        seen = []
        subscription = services.kitchen.subscribe(seen.append)

        order = services.kitchen.relay(5, _lines())
        services.kitchen.advance(order["id"])
        subscription.unsubscribe()
        services.kitchen.advance(order["id"])

        assert [(e.event, e.row["status"]) for e in seen] == [
            ("INSERT", "pending"),
            ("UPDATE", "in_progress"),
        ]
