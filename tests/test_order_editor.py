"""
Tests for editing the order of an occupied table.
"""

import pytest

from errors import NotFoundError, TableStateError, ValidationError


class TestAddLines:
    def test_editor_needs_an_occupied_table(self, services):
        table = services.tables.create_table(capacity=2)
        with pytest.raises(TableStateError):
            services.editor(table["id"])

    def test_same_dish_twice_gives_two_lines(self, services, occupied_table, menu):
        editor = services.editor(occupied_table["id"])
        first = editor.add_dish(menu["burger"]["id"], note="no onion")
        second = editor.add_dish(menu["burger"]["id"])

        assert len(editor.food) == 2
        assert first.instance_id != second.instance_id
        assert first.note == "no onion"
        assert first.station == "inside_kitchen"

    def test_same_drink_twice_merges(self, services, occupied_table, drinks):
        editor = services.editor(occupied_table["id"])
        editor.add_drink(drinks["cola"]["id"], quantity=2)
        line = editor.add_drink(drinks["cola"]["id"])

        assert len(editor.drinks) == 1
        assert line.quantity == 3

    def test_total_includes_extras(self, services, occupied_table, menu, drinks):
        editor = services.editor(occupied_table["id"])
        editor.add_dish(menu["burger"]["id"], quantity=2, extra=1.5)
        editor.add_dish(menu["fries"]["id"])
        editor.add_drink(drinks["cola"]["id"], quantity=2)

        # (10 + 1.5) * 2 + 4 + 2.5 * 2
        assert editor.total == 32.0

    @pytest.mark.parametrize("quantity", [0, -1, "x", 1.5, float("inf"), "nan", False])
    def test_bad_quantity(self, services, occupied_table, menu, quantity):
        editor = services.editor(occupied_table["id"])
        with pytest.raises(ValidationError):
            editor.add_dish(menu["burger"]["id"], quantity=quantity)

    def test_negative_extra(self, services, occupied_table, menu):
        editor = services.editor(occupied_table["id"])
        with pytest.raises(ValidationError):
            editor.add_dish(menu["burger"]["id"], extra=-1)

    @pytest.mark.parametrize("extra", ["nan", "inf", float("-inf")])
    def test_extra_must_be_finite(self, services, occupied_table, menu, extra):
        editor = services.editor(occupied_table["id"])
        with pytest.raises(ValidationError):
            editor.add_dish(menu["burger"]["id"], extra=extra)
        assert editor.total == 0.0

    def test_unknown_items(self, services, occupied_table):
        editor = services.editor(occupied_table["id"])
        with pytest.raises(NotFoundError):
            editor.add_dish(404)
        with pytest.raises(NotFoundError):
            editor.add_drink(404)

    def test_drink_beyond_stock_is_still_added(self, services, occupied_table, drinks):
        editor = services.editor(occupied_table["id"])
        line = editor.add_drink(drinks["water"]["id"], quantity=5)
        assert line.quantity == 5


class TestSave:
    def test_save_persists_lines(self, services, occupied_table, menu, drinks):
        editor = services.editor(occupied_table["id"])
        dish = editor.add_dish(menu["burger"]["id"])
        editor.add_drink(drinks["cola"]["id"])
        editor.save()

        reloaded = services.editor(occupied_table["id"])
        assert [line.instance_id for line in reloaded.food] == [dish.instance_id]
        assert reloaded.food[0].relayed is True
        assert reloaded.drinks[0].name == "Cola"
        assert reloaded.total == 12.5

    def test_only_new_dishes_reach_the_kitchen(self, services, occupied_table, menu, clock):
        editor = services.editor(occupied_table["id"])
        editor.add_dish(menu["burger"]["id"], quantity=2)
        editor.save()

        clock.advance(minutes=5)
        editor.add_dish(menu["fries"]["id"])
        editor.save()
        # nothing new: no ticket
        editor.save()

        tickets = services.kitchen.list_orders()
        assert len(tickets) == 2
        newest, oldest = tickets
        assert [i["name"] for i in oldest["items"]] == ["Burger"]
        assert [i["name"] for i in newest["items"]] == ["Fries"]
        assert newest["table_number"] == occupied_table["number"]
        assert newest["status"] == "pending"

    def test_drinks_are_not_relayed(self, services, occupied_table, drinks):
        editor = services.editor(occupied_table["id"])
        editor.add_drink(drinks["cola"]["id"])
        editor.save()
        assert services.kitchen.list_orders() == []

    def test_remove_line(self, services, occupied_table, menu, drinks):
        editor = services.editor(occupied_table["id"])
        dish = editor.add_dish(menu["burger"]["id"])
        drink = editor.add_drink(drinks["cola"]["id"])
        editor.save()

        editor.remove_line(drink.instance_id)
        editor.save()
        assert services.editor(occupied_table["id"]).lines[0].instance_id == dish.instance_id
        assert len(services.editor(occupied_table["id"]).lines) == 1

        with pytest.raises(NotFoundError):
            editor.remove_line("missing")

    def test_save_after_table_was_freed(self, services, occupied_table, menu):
        editor = services.editor(occupied_table["id"])
        editor.add_dish(menu["burger"]["id"])
        services.tables.update_table(occupied_table["id"], {"status": "free"})

        with pytest.raises(TableStateError):
            editor.save()
        assert services.kitchen.list_orders() == []

    def test_menu_edits_do_not_touch_open_orders(self, services, occupied_table, menu):
        editor = services.editor(occupied_table["id"])
        editor.add_dish(menu["burger"]["id"])
        editor.save()

        services.menu.update_item(menu["burger"]["id"], {"price": 99})
        services.menu.delete_item(menu["fries"]["id"])
        assert services.editor(occupied_table["id"]).total == 10.0
