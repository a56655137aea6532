import json
import queue

from flask import Blueprint, Response, jsonify, request, session

from accounting import parse_day
from auth import admin_required, kitchen_required, login_required
from errors import ValidationError
from services import current_services

api = Blueprint("api", __name__, url_prefix="/api")


def _body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def _order_view(editor) -> dict:
    return {
        "table": editor.table,
        "lines": [line.to_dict() for line in editor.lines],
        "total": editor.total,
    }


def _event_stream(subscribe) -> Response:
    """Server-sent events: one message per change to the subscribed table."""
    events = queue.Queue()
    subscription = subscribe(events.put)

    def generate():
        with subscription:
            yield ": connected\n\n"
            while True:
                try:
                    change = events.get(timeout=15)
                except queue.Empty:
                    yield ": keep-alive\n\n"
                    continue
                data = json.dumps(change.row, default=str)
                yield f"event: {change.event.lower()}\ndata: {data}\n\n"

    response = Response(generate(), mimetype="text/event-stream")
    response.headers["Cache-Control"] = "no-cache"
    response.call_on_close(subscription.unsubscribe)
    return response


# -----------------------
# Tables
# -----------------------
@api.get("/tables")
@login_required
def list_tables():
    return jsonify(current_services().tables.list_tables())


@api.get("/tables/summary")
@login_required
def tables_summary():
    return jsonify(current_services().tables.summary())


@api.post("/tables")
@admin_required
def create_table():
    data = _body()
    table = current_services().tables.create_table(
        number=data.get("number"),
        capacity=data.get("capacity"),
        shape=data.get("shape", "round"),
    )
    return jsonify(table), 201


@api.get("/tables/<int:table_id>")
@login_required
def get_table(table_id: int):
    return jsonify(current_services().tables.get_table(table_id))


@api.patch("/tables/<int:table_id>")
@login_required
def update_table(table_id: int):
    return jsonify(current_services().tables.update_table(table_id, _body()))


@api.delete("/tables/<int:table_id>")
@admin_required
def delete_table(table_id: int):
    current_services().tables.delete_table(table_id)
    return jsonify({"ok": True})


# -----------------------
# Orders on a table
# -----------------------
@api.get("/tables/<int:table_id>/total")
@login_required
def table_total(table_id: int):
    return jsonify(_order_view(current_services().editor(table_id)))


@api.post("/tables/<int:table_id>/lines")
@login_required
def add_line(table_id: int):
    data = _body()
    editor = current_services().editor(table_id)
    kind = data.get("kind")
    if kind == "food":
        line = editor.add_dish(
            data.get("menu_item_id"),
            quantity=data.get("quantity", 1),
            note=data.get("note", ""),
            extra=data.get("extra", 0),
        )
    elif kind == "drink":
        line = editor.add_drink(data.get("inventory_id"), quantity=data.get("quantity", 1))
    else:
        raise ValidationError('kind must be "food" or "drink"')
    editor.save()
    return jsonify({**_order_view(editor), "line": line.to_dict()}), 201


@api.delete("/tables/<int:table_id>/lines/<instance_id>")
@login_required
def remove_line(table_id: int, instance_id: str):
    editor = current_services().editor(table_id)
    editor.remove_line(instance_id)
    editor.save()
    return jsonify(_order_view(editor))


@api.post("/tables/<int:table_id>/settle")
@login_required
def settle_table(table_id: int):
    result = current_services().settlement.settle(table_id, user_email=session.get("email", ""))
    return jsonify(result.to_dict())


@api.post("/billing/quick")
@login_required
def quick_bill():
    data = _body()
    result = current_services().settlement.quick_bill(
        food=data.get("food") or [],
        drinks=data.get("drinks") or [],
        customer_name=data.get("customer_name"),
        user_email=session.get("email", ""),
    )
    return jsonify(result.to_dict()), 201


# -----------------------
# Menu
# -----------------------
@api.get("/menu")
@login_required
def get_menu():
    menu = current_services().menu
    if request.args.get("grouped") == "1":
        return jsonify(menu.grouped_by_station())
    return jsonify(menu.list_items(station=request.args.get("station") or None))


@api.post("/menu")
@admin_required
def create_menu():
    return jsonify(current_services().menu.create_item(_body())), 201


@api.patch("/menu/<int:item_id>")
@admin_required
def update_menu(item_id: int):
    return jsonify(current_services().menu.update_item(item_id, _body()))


@api.delete("/menu/<int:item_id>")
@admin_required
def delete_menu(item_id: int):
    current_services().menu.delete_item(item_id)
    return jsonify({"ok": True})


# -----------------------
# Drink inventory
# -----------------------
@api.get("/inventory")
@login_required
def list_inventory():
    return jsonify(current_services().inventory.list_drinks())


@api.get("/inventory/alerts")
@login_required
def inventory_alerts():
    return jsonify(current_services().inventory.alerts())


@api.get("/inventory/stream")
@login_required
def inventory_stream():
    return _event_stream(current_services().inventory.subscribe)


@api.post("/inventory")
@admin_required
def add_inventory():
    return jsonify(current_services().inventory.add_drink(_body())), 201


@api.patch("/inventory/<int:drink_id>")
@admin_required
def update_inventory(drink_id: int):
    return jsonify(current_services().inventory.update_drink(drink_id, _body()))


@api.post("/inventory/<int:drink_id>/restock")
@admin_required
def restock_inventory(drink_id: int):
    return jsonify(current_services().inventory.restock(drink_id, _body().get("amount")))


@api.delete("/inventory/<int:drink_id>")
@admin_required
def delete_inventory(drink_id: int):
    current_services().inventory.delete_drink(drink_id)
    return jsonify({"ok": True})


# -----------------------
# Kitchen
# -----------------------
@api.get("/kitchen/orders")
@kitchen_required
def kitchen_orders():
    return jsonify(current_services().kitchen.list_orders(request.args.get("status") or None))


@api.post("/kitchen/orders/<int:order_id>/advance")
@kitchen_required
def advance_kitchen_order(order_id: int):
    return jsonify(current_services().kitchen.advance(order_id))


@api.get("/kitchen/orders/stream")
@kitchen_required
def kitchen_stream():
    return _event_stream(current_services().kitchen.subscribe)


# -----------------------
# Accounting
# -----------------------
@api.get("/accounting/daily")
@admin_required
def accounting_daily():
    accounting = current_services().accounting
    if "start" not in request.args and "end" not in request.args:
        return jsonify(accounting.last_days(7))
    end = request.args.get("end") or accounting.today()
    start = request.args.get("start") or end
    return jsonify(accounting.daily_totals(start, end, descending=True))


@api.get("/accounting/day/<day>")
@admin_required
def accounting_day(day: str):
    return jsonify(current_services().accounting.day_detail(day))


@api.get("/accounting/summary")
@admin_required
def accounting_summary():
    accounting = current_services().accounting
    end = request.args.get("end") or accounting.today()
    start = request.args.get("start") or parse_day(end).replace(day=1)
    return jsonify(accounting.period_summary(start, end))


@api.get("/accounting/month/<int:year>/<int:month>")
@admin_required
def accounting_month(year: int, month: int):
    return jsonify(current_services().accounting.month_summary(year, month))


# -----------------------
# Expenses + cash register
# -----------------------
@api.get("/expenses")
@admin_required
def list_expenses():
    return jsonify(
        current_services().accounting.list_expenses(
            request.args.get("start"), request.args.get("end")
        )
    )


@api.post("/expenses")
@admin_required
def add_expense():
    return jsonify(current_services().accounting.add_expense(_body())), 201


@api.delete("/expenses/<int:expense_id>")
@admin_required
def delete_expense(expense_id: int):
    current_services().accounting.delete_expense(expense_id)
    return jsonify({"ok": True})


@api.get("/cash-register")
@admin_required
def get_cash_register():
    return jsonify(current_services().accounting.register_for(request.args.get("date")))


@api.post("/cash-register")
@admin_required
def open_cash_register():
    data = _body()
    register = current_services().accounting.open_register(
        data.get("opening_amount"), day=data.get("date")
    )
    return jsonify(register), 201


@api.post("/cash-register/<int:register_id>/close")
@admin_required
def close_cash_register(register_id: int):
    return jsonify(
        current_services().accounting.close_register(register_id, _body().get("closing_amount"))
    )


# -----------------------
# Users
# -----------------------
@api.get("/admin/users")
@admin_required
def list_users():
    return jsonify(current_services().accounts.list_users())


@api.post("/admin/users")
@admin_required
def create_user():
    data = _body()
    result = current_services().accounts.create_account(
        data.get("email"), data.get("password"), data.get("role", "normal")
    )
    return jsonify(result), (201 if result.get("success") else 400)


@api.patch("/admin/users/<int:user_id>/role")
@admin_required
def set_user_role(user_id: int):
    return jsonify(current_services().accounts.set_role(user_id, _body().get("role")))


@api.post("/me/password")
@login_required
def change_password():
    data = _body()
    current_services().accounts.change_password(
        session["user_id"], data.get("current_password"), data.get("new_password")
    )
    return jsonify({"ok": True})
