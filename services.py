"""
Wiring: one service bundle per app, built around one explicit ``Store``.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Callable
from zoneinfo import ZoneInfo

from flask import current_app

from accounting import AccountingService
from accounts import AccountService
from inventory import InventoryService
from kitchen import KitchenRelay
from menu import MenuService
from order_editor import OrderEditor
from settlement import SettlementService
from storage import Store
from table_store import TableStore


def business_clock(tz_name: str = "UTC") -> Callable[[], datetime]:
    """Naive wall-clock time in the restaurant's timezone; all stored timestamps use it."""
    tz = ZoneInfo(tz_name)

    def now() -> datetime:
        return datetime.now(tz).replace(tzinfo=None)

    return now


@dataclass
class PosServices:
    store: Store
    clock: Callable[[], datetime]
    tables: TableStore
    menu: MenuService
    inventory: InventoryService
    kitchen: KitchenRelay
    settlement: SettlementService
    accounting: AccountingService
    accounts: AccountService

    def editor(self, table_id: int) -> OrderEditor:
        return OrderEditor(self.tables, self.kitchen, table_id)


def build_services(store: Store, config: dict, event_log=None, clock=None) -> PosServices:
    clock = clock or business_clock(config.get("BUSINESS_TIMEZONE", "UTC"))
    return PosServices(
        store=store,
        clock=clock,
        tables=TableStore(store, clock),
        menu=MenuService(store),
        inventory=InventoryService(
            store,
            low_threshold=config.get("LOW_STOCK_THRESHOLD", 10),
            critical_threshold=config.get("CRITICAL_STOCK_THRESHOLD", 5),
        ),
        kitchen=KitchenRelay(store, clock),
        settlement=SettlementService(store, clock, event_log=event_log),
        accounting=AccountingService(store, clock),
        accounts=AccountService(store),
    )


def current_services() -> PosServices:
    return current_app.extensions["pos"]
