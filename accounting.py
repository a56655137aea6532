"""
Daily and monthly accounting.

Read side: per-day totals over a date range, drill-down into one day's
settled orders and counter sales, period summaries with expenses.
Write side: the expense book and the daily cash register. Every call reads
fresh from storage.
"""

import calendar
import logging
from datetime import date, datetime, time, timedelta
from typing import Callable

from errors import ConflictError, NotFoundError, ValidationError
from menu import parse_price
from models import CashRegister, DailySale, DailyTotal, Expense, OrderHistory
from order_lines import money

logger = logging.getLogger(__name__)


def parse_day(value) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        # tolerate full timestamps, keep only the calendar day
        return date.fromisoformat(str(value).split("T")[0])
    except ValueError:
        raise ValidationError(f"Invalid date: {value!r} (expected YYYY-MM-DD)")


def month_bounds(year: int, month: int) -> tuple[date, date]:
    if not 1 <= month <= 12:
        raise ValidationError("month must be between 1 and 12")
    last = calendar.monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, last)


def day_bounds(day: date) -> tuple[datetime, datetime]:
    return datetime.combine(day, time.min), datetime.combine(day, time.max)


def _range(start, end) -> tuple[date, date]:
    start, end = parse_day(start), parse_day(end)
    if start > end:
        raise ValidationError("start date must not be after end date")
    return start, end


def itemize(orders: list[dict], sales: list[dict] = ()) -> list[dict]:
    """Group sold lines by name, summing quantity and quantity x (price + extra)."""
    grouped: dict[str, dict] = {}

    def add(lines):
        for line in lines or []:
            entry = grouped.setdefault(
                line["name"], {"name": line["name"], "quantity": 0, "amount": 0.0}
            )
            entry["quantity"] += line["quantity"]
            entry["amount"] = money(
                entry["amount"] + (line["price"] + line.get("extra", 0.0)) * line["quantity"]
            )

    for order in orders:
        add(order.get("food"))
        add(order.get("drinks"))
    for sale in sales:
        add(sale.get("food_items"))
        add(sale.get("soda_items"))

    return sorted(grouped.values(), key=lambda e: (-e["amount"], e["name"]))


def chart_series(daily_rows: list[dict]) -> dict:
    rows = sorted(daily_rows, key=lambda r: r["date"])
    return {
        "labels": [r["date"].isoformat() for r in rows],
        "values": [r["total"] for r in rows],
    }


class AccountingService:
    def __init__(self, store, clock: Callable[[], datetime]):
        self.store = store
        self.clock = clock

    def today(self) -> date:
        return self.clock().date()

    # -----------------------
    # Sales
    # -----------------------
    def daily_totals(self, start, end, descending: bool = False) -> list[dict]:
        start, end = _range(start, end)
        return self.store.select(
            DailyTotal,
            gte={"date": start},
            lte={"date": end},
            order_by="date",
            descending=descending,
        )

    def last_days(self, days: int = 7) -> list[dict]:
        today = self.today()
        return self.daily_totals(today - timedelta(days=days - 1), today, descending=True)

    def day_detail(self, day) -> dict:
        day = parse_day(day)
        start, end = day_bounds(day)

        daily = self.store.single(DailyTotal, date=day)
        orders = self.store.select(
            OrderHistory,
            gte={"created_at": start},
            lte={"created_at": end},
            order_by="created_at",
            descending=True,
        )
        sales = self.store.select(
            DailySale, eq={"sale_date": day}, order_by="created_at", descending=True
        )
        return {
            "date": day,
            "total": daily["total"] if daily else 0.0,
            "orders": orders,
            "sales": sales,
            "items": itemize(orders, sales),
        }

    def period_summary(self, start, end) -> dict:
        start, end = _range(start, end)
        days = self.daily_totals(start, end)
        sales_total = money(sum(d["total"] for d in days))
        expenses_total = self.expenses_total(start, end)
        return {
            "start": start,
            "end": end,
            "days": days,
            "sales_total": sales_total,
            "expenses_total": expenses_total,
            "net": money(sales_total - expenses_total),
            "chart": chart_series(days),
        }

    def month_summary(self, year: int, month: int) -> dict:
        return self.period_summary(*month_bounds(year, month))

    # -----------------------
    # Expenses
    # -----------------------
    def add_expense(self, values: dict) -> dict:
        amount = parse_price(values.get("amount"))
        if amount <= 0:
            raise ValidationError("Expense amount must be greater than zero")
        description = str(values.get("description") or "").strip()
        if not description:
            raise ValidationError("Expense description is required")

        expense = self.store.insert(
            Expense,
            {
                "date": parse_day(values.get("date") or self.today()),
                "amount": amount,
                "description": description,
                "category": str(values.get("category") or "").strip() or "General",
            },
        )
        logger.info("Expense recorded: %.2f %s", amount, description)
        return expense

    def list_expenses(self, start=None, end=None) -> list[dict]:
        start = parse_day(start) if start else self.today()
        end = parse_day(end) if end else start
        start, end = _range(start, end)
        return self.store.select(
            Expense, gte={"date": start}, lte={"date": end}, order_by="date"
        )

    def expenses_total(self, start, end) -> float:
        return money(sum(e["amount"] for e in self.list_expenses(start, end)))

    def delete_expense(self, expense_id: int) -> None:
        if not self.store.delete(Expense, expense_id):
            raise NotFoundError("Expense", expense_id)

    # -----------------------
    # Cash register
    # -----------------------
    def register_for(self, day=None) -> dict | None:
        return self.store.single(CashRegister, date=parse_day(day or self.today()))

    def open_register(self, opening_amount, day=None) -> dict:
        day = parse_day(day or self.today())
        amount = parse_price(opening_amount)

        with self.store.transaction() as tx:
            if tx.single(CashRegister, date=day):
                raise ConflictError(f"The cash register for {day} is already open")
            register = tx.insert(
                CashRegister,
                {"date": day, "opening_amount": amount, "opened_at": self.clock()},
            )
        logger.info("Cash register opened for %s with %.2f", day, amount)
        return register

    def close_register(self, register_id: int, closing_amount) -> dict:
        amount = parse_price(closing_amount)

        with self.store.transaction() as tx:
            register = tx.get(CashRegister, register_id)
            if register is None:
                raise NotFoundError("Cash register", register_id)
            if register["closing_amount"] is not None:
                raise ConflictError(f"The cash register for {register['date']} is already closed")
            return tx.update(
                CashRegister,
                register_id,
                {"closing_amount": amount, "closed_at": self.clock()},
            )
