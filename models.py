import datetime as dt

from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy import (
    JSON, Date, DateTime, Float, ForeignKey, Integer, String, func,
)


class Base(DeclarativeBase):
    def to_dict(self) -> dict:
        return {c.name: getattr(self, c.name) for c in self.__table__.columns}


class User(Base):
    """Login identity. Roles live in ``user_roles``."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True, nullable=False)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[dt.datetime] = mapped_column(DateTime, server_default=func.now())


class UserRole(Base):
    __tablename__ = "user_roles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    # normal / admin / kitchen
    role: Mapped[str] = mapped_column(String(20), default="normal", nullable=False)


class DiningTable(Base):
    __tablename__ = "tables"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    number: Mapped[int] = mapped_column(Integer, unique=True, nullable=False)
    capacity: Mapped[int] = mapped_column(Integer, nullable=False)
    shape: Mapped[str] = mapped_column(String(10), default="round", nullable=False)
    status: Mapped[str] = mapped_column(String(10), default="free", nullable=False)

    # {"name": ..., "party_size": ...} while occupied or reserved
    customer: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    occupied_at: Mapped[dt.datetime | None] = mapped_column(DateTime, nullable=True)

    # serialized FoodLine / DrinkLine dicts (see order_lines.py)
    food: Mapped[list] = mapped_column(JSON, default=list, nullable=False)
    drinks: Mapped[list] = mapped_column(JSON, default=list, nullable=False)


class MenuItem(Base):
    __tablename__ = "menu"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    price: Mapped[float] = mapped_column(Float, nullable=False)

    # buffet / inside_kitchen / outside_kitchen
    station: Mapped[str] = mapped_column(String(30), default="inside_kitchen", nullable=False)


class SodaInventory(Base):
    __tablename__ = "soda_inventory"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    brand: Mapped[str | None] = mapped_column(String(120), nullable=True)
    quantity: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    price: Mapped[float] = mapped_column(Float, nullable=False)
    created_at: Mapped[dt.datetime] = mapped_column(DateTime, server_default=func.now())
    updated_at: Mapped[dt.datetime] = mapped_column(
        DateTime, server_default=func.now(), onupdate=func.now()
    )


class DailyTotal(Base):
    __tablename__ = "daily_totals"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    date: Mapped[dt.date] = mapped_column(Date, unique=True, index=True, nullable=False)
    total: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)

    # {item name: {"quantity": n, "amount": x}}
    items: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    created_at: Mapped[dt.datetime] = mapped_column(DateTime, server_default=func.now())
    updated_at: Mapped[dt.datetime] = mapped_column(
        DateTime, server_default=func.now(), onupdate=func.now()
    )


class DailySale(Base):
    """Counter sale with no table (quick billing)."""

    __tablename__ = "daily_sales"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    sale_date: Mapped[dt.date] = mapped_column(Date, index=True, nullable=False)
    table_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    customer_name: Mapped[str | None] = mapped_column(String(120), nullable=True)
    food_items: Mapped[list] = mapped_column(JSON, default=list, nullable=False)
    soda_items: Mapped[list] = mapped_column(JSON, default=list, nullable=False)
    total: Mapped[float] = mapped_column(Float, nullable=False)
    created_at: Mapped[dt.datetime] = mapped_column(DateTime, nullable=False)


class OrderHistory(Base):
    """Snapshot written once at settlement. Never updated."""

    __tablename__ = "table_orders_history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    # no FK: tables can be deleted while their history stays
    table_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    table_number: Mapped[int] = mapped_column(Integer, nullable=False)
    customer: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    food: Mapped[list] = mapped_column(JSON, default=list, nullable=False)
    drinks: Mapped[list] = mapped_column(JSON, default=list, nullable=False)
    extras: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    total: Mapped[float] = mapped_column(Float, nullable=False)
    created_at: Mapped[dt.datetime] = mapped_column(DateTime, index=True, nullable=False)


class KitchenOrder(Base):
    __tablename__ = "orders"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    table_number: Mapped[int] = mapped_column(Integer, nullable=False)
    # [{"name": ..., "quantity": ..., "note": ..., "station": ...}]
    items: Mapped[list] = mapped_column(JSON, default=list, nullable=False)
    # pending / in_progress / completed
    status: Mapped[str] = mapped_column(String(20), default="pending", nullable=False)
    created_at: Mapped[dt.datetime] = mapped_column(DateTime, nullable=False)
    updated_at: Mapped[dt.datetime | None] = mapped_column(DateTime, nullable=True)


class Expense(Base):
    __tablename__ = "expenses"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    date: Mapped[dt.date] = mapped_column(Date, index=True, nullable=False)
    amount: Mapped[float] = mapped_column(Float, nullable=False)
    description: Mapped[str] = mapped_column(String(255), nullable=False)
    category: Mapped[str] = mapped_column(String(60), default="General", nullable=False)
    created_at: Mapped[dt.datetime] = mapped_column(DateTime, server_default=func.now())


class CashRegister(Base):
    __tablename__ = "cash_register"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    date: Mapped[dt.date] = mapped_column(Date, unique=True, nullable=False)
    opening_amount: Mapped[float] = mapped_column(Float, nullable=False)
    closing_amount: Mapped[float | None] = mapped_column(Float, nullable=True)
    opened_at: Mapped[dt.datetime] = mapped_column(DateTime, nullable=False)
    closed_at: Mapped[dt.datetime | None] = mapped_column(DateTime, nullable=True)
