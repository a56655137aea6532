import logging

from flask import (
    Blueprint, current_app, flash, redirect, render_template, request, session, url_for,
)

from auth import KITCHEN, admin_required, kitchen_required, login_required, resolve_role
from errors import AuthTimeoutError, PosError
from kitchen import IN_PROGRESS, PENDING
from menu import STATIONS
from services import current_services
from table_store import OCCUPIED, RESERVED

logger = logging.getLogger(__name__)

web = Blueprint("web", __name__)


def _back_to_table(table_id: int):
    return redirect(url_for("web.table", table_id=table_id))


# -----------------------
# Auth
# -----------------------
@web.route("/login", methods=["GET", "POST"])
def login():
    if request.method == "POST":
        services = current_services()
        user = services.accounts.authenticate(
            request.form.get("email", ""), request.form.get("password", "")
        )
        if not user:
            flash("Invalid login.")
            return redirect(url_for("web.login"))

        try:
            role = resolve_role(
                services.accounts.role_of, user["id"], current_app.config["AUTH_TIMEOUT_SECONDS"]
            )
        except AuthTimeoutError as e:
            flash(e.message)
            return redirect(url_for("web.login"))
        if role is None:
            flash("Your account has no role assigned.")
            return redirect(url_for("web.login"))

        session.clear()
        session["user_id"] = user["id"]
        session["email"] = user["email"]
        logger.info("%s logged in as %s", user["email"], role)
        flash("Logged in.")
        return redirect(url_for("web.kitchen" if role == KITCHEN else "web.index"))

    return render_template("login.html")


@web.get("/logout")
def logout():
    session.clear()
    flash("Logged out.")
    return redirect(url_for("web.login"))


# -----------------------
# Floor
# -----------------------
@web.get("/")
@login_required
def index():
    services = current_services()
    return render_template(
        "floor.html",
        tables=services.tables.list_tables(),
        summary=services.tables.summary(),
        alerts=services.inventory.alerts(),
    )


@web.post("/tables/<int:table_id>/status")
@login_required
def table_status(table_id: int):
    status = request.form.get("status", "")
    changes = {"status": status}
    if status in (OCCUPIED, RESERVED):
        changes["customer"] = {
            "name": request.form.get("customer_name", ""),
            "party_size": request.form.get("party_size", 1),
        }
    try:
        current_services().tables.update_table(table_id, changes)
    except PosError as e:
        flash(e.message)
        return redirect(url_for("web.index"))

    if status == OCCUPIED:
        return _back_to_table(table_id)
    return redirect(url_for("web.index"))


# -----------------------
# Order on a table
# -----------------------
@web.get("/tables/<int:table_id>")
@login_required
def table(table_id: int):
    services = current_services()
    try:
        editor = services.editor(table_id)
    except PosError as e:
        flash(e.message)
        return redirect(url_for("web.index"))

    return render_template(
        "table.html",
        table=editor.table,
        food=editor.food,
        drinks=editor.drinks,
        total=editor.total,
        menu=services.menu.grouped_by_station(),
        inventory=services.inventory.list_drinks(),
    )


@web.post("/tables/<int:table_id>/food")
@login_required
def table_add_food(table_id: int):
    try:
        editor = current_services().editor(table_id)
        line = editor.add_dish(
            request.form.get("menu_item_id", type=int),
            quantity=request.form.get("quantity", 1),
            note=request.form.get("note", ""),
            extra=request.form.get("extra") or 0,
        )
        editor.save()
    except PosError as e:
        flash(e.message)
    else:
        flash(f"{line.quantity} x {line.name} sent to the kitchen.")
    return _back_to_table(table_id)


@web.post("/tables/<int:table_id>/drinks")
@login_required
def table_add_drink(table_id: int):
    try:
        editor = current_services().editor(table_id)
        line = editor.add_drink(
            request.form.get("inventory_id", type=int),
            quantity=request.form.get("quantity", 1),
        )
        editor.save()
    except PosError as e:
        flash(e.message)
    else:
        flash(f"{line.name} is now x{line.quantity}.")
    return _back_to_table(table_id)


@web.post("/tables/<int:table_id>/lines/<instance_id>/remove")
@login_required
def table_remove_line(table_id: int, instance_id: str):
    try:
        editor = current_services().editor(table_id)
        editor.remove_line(instance_id)
        editor.save()
    except PosError as e:
        flash(e.message)
    return _back_to_table(table_id)


@web.post("/tables/<int:table_id>/settle")
@login_required
def table_settle(table_id: int):
    try:
        result = current_services().settlement.settle(
            table_id, user_email=session.get("email", "")
        )
    except PosError as e:
        flash(e.message)
        return _back_to_table(table_id)

    for failure in result.failed_lines:
        flash(f"Stock not updated for {failure.name}: {failure.reason}")
    flash(f"Table {result.table_number} paid: {result.total:.2f}")
    return render_template("invoice.html", invoice=result.invoice())


# -----------------------
# Kitchen
# -----------------------
@web.get("/kitchen")
@kitchen_required
def kitchen():
    relay = current_services().kitchen
    return render_template(
        "kitchen.html",
        pending=relay.list_orders(PENDING),
        in_progress=relay.list_orders(IN_PROGRESS),
    )


@web.post("/kitchen/orders/<int:order_id>/advance")
@kitchen_required
def kitchen_advance(order_id: int):
    try:
        current_services().kitchen.advance(order_id)
    except PosError as e:
        flash(e.message)
    return redirect(url_for("web.kitchen"))


# -----------------------
# Admin: accounting
# -----------------------
@web.get("/admin/accounting")
@admin_required
def accounting():
    services = current_services()
    today = services.accounting.today()
    try:
        detail = services.accounting.day_detail(request.args.get("date") or today)
    except PosError as e:
        flash(e.message)
        detail = services.accounting.day_detail(today)

    return render_template(
        "accounting.html",
        detail=detail,
        last_days=services.accounting.last_days(7),
        month=services.accounting.month_summary(today.year, today.month),
        register=services.accounting.register_for(today),
    )


# -----------------------
# Admin: CRUD Menu
# -----------------------
@web.get("/admin/menu")
@admin_required
def admin_menu():
    return render_template(
        "admin_menu.html", items=current_services().menu.list_items(), stations=STATIONS
    )


@web.post("/admin/menu/create")
@admin_required
def admin_menu_create():
    try:
        item = current_services().menu.create_item(request.form.to_dict())
    except PosError as e:
        flash(e.message)
    else:
        flash(f"Menu item created: {item['name']}.")
    return redirect(url_for("web.admin_menu"))


@web.post("/admin/menu/delete/<int:item_id>")
@admin_required
def admin_menu_delete(item_id: int):
    try:
        current_services().menu.delete_item(item_id)
    except PosError as e:
        flash(e.message)
    else:
        flash("Menu item deleted.")
    return redirect(url_for("web.admin_menu"))


# -----------------------
# Admin: users
# -----------------------
@web.route("/admin/users", methods=["GET", "POST"])
@admin_required
def admin_users():
    accounts = current_services().accounts
    if request.method == "POST":
        result = accounts.create_account(
            request.form.get("email", ""),
            request.form.get("password", ""),
            request.form.get("role", "normal"),
        )
        flash(result.get("error") or "Account created.")
        return redirect(url_for("web.admin_users"))

    return render_template("admin_users.html", users=accounts.list_users())
