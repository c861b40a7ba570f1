"""Wiring of the reconciliation components around one local store."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from .catalog import MenuCatalog
from .config import PosConfig
from .db import (
    CounterRepository,
    InventoryRepository,
    LocalStore,
    MenuRepository,
    OrderRepository,
    SQLiteStore,
    TableRepository,
    TokenRepository,
)
from .deduction import DeductionEngine
from .events import EventQueue, EventReconciler, ReconcileSummary
from .lifecycle import OrderLifecycleManager, TableBoard
from .numbering import OrderNumberService
from .remote import RemoteClient
from .scheduler import DeductionScheduler
from .sync import OfflineSyncService, SyncResult

logger = logging.getLogger(__name__)


@dataclass
class PosApp:
    config: PosConfig
    store: LocalStore
    client: RemoteClient
    orders: OrderRepository
    inventory: InventoryRepository
    catalog: MenuCatalog
    tables: TableBoard
    numbering: OrderNumberService
    lifecycle: OrderLifecycleManager
    engine: DeductionEngine
    scheduler: DeductionScheduler
    sync: OfflineSyncService
    events: EventQueue
    reconciler: EventReconciler

    async def startup(self) -> SyncResult:
        """Refresh cached remote state and push the offline queue."""
        await self.catalog.refresh(self.client)
        result = await self.sync.sync_pending_orders()
        await self.lifecycle.refresh_from_remote()
        await self.tables.refresh(self.client)
        return result

    async def handle_events(self) -> ReconcileSummary:
        """Reconcile every queued push event."""
        return await self.reconciler.drain(self.events)

    async def aclose(self) -> None:
        self.scheduler.stop()
        await self.client.aclose()
        close = getattr(self.store, "close", None)
        if close is not None:
            close()


def build_app(
    config: PosConfig,
    store: LocalStore | None = None,
    client: RemoteClient | None = None,
) -> PosApp:
    """Assemble the components from configuration."""
    store = store if store is not None else SQLiteStore(config.store.path)
    client = client or RemoteClient(
        config.remote.base_url,
        TokenRepository(store),
        timeout=config.remote.timeout,
    )

    orders = OrderRepository(store)
    inventory = InventoryRepository(store)
    catalog = MenuCatalog(MenuRepository(store))
    tables = TableBoard(TableRepository(store), orders)
    numbering = OrderNumberService(client, orders, CounterRepository(store))
    lifecycle = OrderLifecycleManager(
        orders,
        tables,
        client,
        numbering,
        self_service=config.orders.self_service,
        tax_rate=config.billing.tax_rate,
        completed_ttl_minutes=config.orders.completed_ttl_minutes,
    )
    engine = DeductionEngine(catalog, inventory)
    scheduler = DeductionScheduler(
        orders,
        engine,
        grace_period=config.deduction.grace_period_seconds,
        scan_interval=config.deduction.scan_interval_seconds,
    )
    sync = OfflineSyncService(orders, client, tables, numbering)

    async def refresh_orders(order_ids: list[str]) -> None:
        await lifecycle.refresh_from_remote()

    async def refresh_inventory() -> None:
        # Stock changed elsewhere; retry deductions that were short of it
        scheduler.run_once()

    return PosApp(
        config=config,
        store=store,
        client=client,
        orders=orders,
        inventory=inventory,
        catalog=catalog,
        tables=tables,
        numbering=numbering,
        lifecycle=lifecycle,
        engine=engine,
        scheduler=scheduler,
        sync=sync,
        events=EventQueue(),
        reconciler=EventReconciler(refresh_orders, refresh_inventory),
    )
