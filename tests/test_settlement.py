"""
Tests for settling tables and counter sales.
"""

from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import OperationalError

import settlement
from errors import BackendError, ConflictError, NotFoundError, TableStateError, ValidationError
from models import DailySale, DailyTotal, OrderHistory


def _order(services, table_id, *dishes, drinks=()):
    editor = services.editor(table_id)
    for menu_item_id, quantity in dishes:
        editor.add_dish(menu_item_id, quantity=quantity)
    for inventory_id, quantity in drinks:
        editor.add_drink(inventory_id, quantity=quantity)
    editor.save()
    return editor


class TestSettle:
    def test_settle_table(self, services, store, clock, occupied_table, menu, drinks):
        _order(
            services, occupied_table["id"],
            (menu["burger"]["id"], 2), (menu["fries"]["id"], 1),
            drinks=[(drinks["cola"]["id"], 3)],
        )

        result = services.settlement.settle(occupied_table["id"], user_email="ana@mesa.test")

        # 10 * 2 + 4 + 2.5 * 3
        assert result.total == 31.5
        assert result.ok
        assert result.table_number == occupied_table["number"]
        assert result.customer == {"name": "Ana", "party_size": 3}

        table = services.tables.get_table(occupied_table["id"])
        assert table["status"] == "free"
        assert table["customer"] is None
        assert table["food"] == [] and table["drinks"] == []

        assert services.inventory.get_drink(drinks["cola"]["id"])["quantity"] == 17

        history = store.get(OrderHistory, result.record_id)
        assert history["total"] == 31.5
        assert history["created_at"] == clock.now
        assert len(history["food"]) == 2

        daily = store.single(DailyTotal, date=clock.now.date())
        assert daily["total"] == 31.5
        assert daily["items"]["Burger"] == {"quantity": 2, "amount": 20.0}
        assert daily["items"]["Cola"] == {"quantity": 3, "amount": 7.5}

    def test_daily_total_accumulates(self, services, store, clock, menu):
        for capacity in (2, 4):
            table = services.tables.create_table(capacity=capacity)
            services.tables.update_table(
                table["id"], {"status": "occupied", "customer": {"name": "X", "party_size": 1}}
            )
            _order(services, table["id"], (menu["burger"]["id"], 1))
            services.settlement.settle(table["id"])

        daily = store.single(DailyTotal, date=clock.now.date())
        assert daily["total"] == 20.0
        assert daily["items"]["Burger"]["quantity"] == 2
        assert len(store.select(OrderHistory)) == 2

    def test_short_stock_is_reported_but_charged(self, services, occupied_table, menu, drinks):
        _order(
            services, occupied_table["id"],
            (menu["burger"]["id"], 1),
            drinks=[(drinks["water"]["id"], 5), (drinks["cola"]["id"], 1)],
        )

        result = services.settlement.settle(occupied_table["id"])

        assert not result.ok
        assert [f.name for f in result.failed_lines] == ["Water"]
        assert "only 3 on hand" in result.failed_lines[0].reason
        assert result.total == 10.0 + 1.5 * 5 + 2.5
        assert services.inventory.get_drink(drinks["water"]["id"])["quantity"] == 3
        assert services.inventory.get_drink(drinks["cola"]["id"])["quantity"] == 19
        assert services.tables.get_table(occupied_table["id"])["status"] == "free"

    def test_deleted_drink_is_reported(self, services, occupied_table, drinks):
        _order(services, occupied_table["id"], drinks=[(drinks["cola"]["id"], 2)])
        services.inventory.delete_drink(drinks["cola"]["id"])

        result = services.settlement.settle(occupied_table["id"])
        assert result.failed_lines[0].reason == "inventory row not found"
        assert result.total == 5.0

    def test_free_table_cannot_be_settled(self, services):
        table = services.tables.create_table(capacity=2)
        with pytest.raises(TableStateError):
            services.settlement.settle(table["id"])
        with pytest.raises(NotFoundError):
            services.settlement.settle(999)

    def test_empty_order_cannot_be_settled(self, services, occupied_table):
        with pytest.raises(ValidationError):
            services.settlement.settle(occupied_table["id"])

    def test_storage_failure_rolls_everything_back(
        self, services, store, monkeypatch, occupied_table, menu, drinks
    ):
        _order(
            services, occupied_table["id"],
            (menu["burger"]["id"], 1),
            drinks=[(drinks["cola"]["id"], 2)],
        )

        def broken(*args, **kwargs):
            raise OperationalError("UPDATE daily_totals", {}, Exception("disk I/O error"))

        monkeypatch.setattr(settlement, "add_to_daily_total", broken)

        with pytest.raises(BackendError):
            services.settlement.settle(occupied_table["id"])

        table = services.tables.get_table(occupied_table["id"])
        assert table["status"] == "occupied"
        assert len(table["food"]) == 1
        assert services.inventory.get_drink(drinks["cola"]["id"])["quantity"] == 20
        assert store.select(OrderHistory) == []
        assert store.select(DailyTotal) == []

    def test_invoice(self, services, occupied_table, menu):
        editor = services.editor(occupied_table["id"])
        editor.add_dish(menu["burger"]["id"], quantity=2, extra=0.5, note="well done")
        editor.save()

        invoice = services.settlement.settle(occupied_table["id"]).invoice()
        assert invoice["customer_name"] == "Ana"
        assert invoice["items"] == [
            {"name": "Burger", "quantity": 2, "price": 10.5, "note": "well done", "subtotal": 21.0}
        ]
        assert invoice["drinks"] == []
        assert invoice["total"] == 21.0


class TestEventLog:
    def test_settlement_is_logged(self, store, clock, services, occupied_table, menu):
        event_log = MagicMock()
        service = settlement.SettlementService(store, clock, event_log=event_log)
        _order(services, occupied_table["id"], (menu["burger"]["id"], 1))

        result = service.settle(occupied_table["id"], user_email="ana@mesa.test")

        event_log.log_order_event.assert_called_once()
        kwargs = event_log.log_order_event.call_args.kwargs
        assert kwargs["event"] == "TABLE_SETTLED"
        assert kwargs["order_id"] == result.record_id
        assert kwargs["user_email"] == "ana@mesa.test"
        assert kwargs["payload"]["total"] == 10.0

    def test_event_log_failure_does_not_undo_settlement(
        self, store, clock, services, occupied_table, menu
    ):
        event_log = MagicMock()
        event_log.log_order_event.side_effect = RuntimeError("firestore down")
        service = settlement.SettlementService(store, clock, event_log=event_log)
        _order(services, occupied_table["id"], (menu["burger"]["id"], 1))

        result = service.settle(occupied_table["id"])
        assert result.total == 10.0
        assert services.tables.get_table(occupied_table["id"])["status"] == "free"


class TestQuickBill:
    def test_counter_sale(self, services, store, clock, menu, drinks):
        result = services.settlement.quick_bill(
            food=[{"menu_item_id": menu["fries"]["id"], "quantity": 2}],
            drinks=[
                {"inventory_id": drinks["cola"]["id"], "quantity": 1},
                {"inventory_id": drinks["cola"]["id"], "quantity": 2},
            ],
            customer_name=" Walk-in ",
        )

        assert result.total == 8.0 + 7.5
        assert result.table_id is None
        assert len(result.drinks) == 1 and result.drinks[0]["quantity"] == 3
        assert services.inventory.get_drink(drinks["cola"]["id"])["quantity"] == 17

        sale = store.get(DailySale, result.record_id)
        assert sale["customer_name"] == "Walk-in"
        assert sale["sale_date"] == clock.now.date()
        assert store.single(DailyTotal, date=clock.now.date())["total"] == 15.5
        # counter sales skip the kitchen screen
        assert services.kitchen.list_orders() == []

    def test_empty_bill_rejected(self, services):
        with pytest.raises(ValidationError):
            services.settlement.quick_bill(food=[], drinks=[])

    def test_unknown_item_writes_nothing(self, services, store, menu):
        with pytest.raises(NotFoundError):
            services.settlement.quick_bill(
                food=[{"menu_item_id": menu["fries"]["id"]}, {"menu_item_id": 404}], drinks=[]
            )
        assert store.select(DailySale) == []


class TestFloorScenario:
    def test_table_five_for_lopez(self, services, store, clock):
        table = services.tables.create_table(number=5, capacity=4, shape="round")
        services.tables.update_table(
            table["id"], {"status": "occupied", "customer": {"name": "Lopez", "party_size": 2}}
        )
        milanesa = services.menu.create_item({"name": "Milanesa", "price": "L7.50"})
        cola = services.inventory.add_drink({"name": "Cola", "quantity": 10, "price": "L1.50"})

        editor = services.editor(table["id"])
        editor.add_dish(milanesa["id"], quantity=2)
        editor.add_drink(cola["id"], quantity=1)
        editor.save()

        result = services.settlement.settle(table["id"])

        assert result.total == 16.5
        assert services.tables.get_table(table["id"])["status"] == "free"
        assert services.inventory.get_drink(cola["id"])["quantity"] == 9
        assert [h["total"] for h in store.select(OrderHistory)] == [16.5]
        assert store.single(DailyTotal, date=clock.now.date())["total"] == 16.5

        with pytest.raises(ConflictError):
            services.tables.create_table(number=5, capacity=2)
        assert [t["number"] for t in services.tables.list_tables()] == [5]

    def test_out_of_stock_drink_still_frees_table(self, services, occupied_table, menu):
        empty = services.inventory.add_drink({"name": "Horchata", "quantity": 0, "price": 2})
        _order(
            services, occupied_table["id"],
            (menu["burger"]["id"], 1),
            drinks=[(empty["id"], 1)],
        )

        result = services.settlement.settle(occupied_table["id"])

        assert [f.name for f in result.failed_lines] == ["Horchata"]
        assert result.total == 12.0
        assert services.inventory.get_drink(empty["id"])["quantity"] == 0
        assert services.tables.get_table(occupied_table["id"])["status"] == "free"
