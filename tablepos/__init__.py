"""Order and inventory reconciliation core for a restaurant POS client."""

from .billing import OrderTotals, calculate_totals, change_due, consolidate
from .catalog import MenuCatalog, parse_menu
from .config import (
    BillingConfig,
    DeductionConfig,
    OrdersConfig,
    PosConfig,
    RemoteConfig,
    StoreConfig,
    load_config,
)
from .deduction import DeductionEngine, DeductionResult, IngredientFailure
from .events import Event, EventQueue, EventReconciler, parse_event
from .lifecycle import CartItem, CheckoutResult, OrderLifecycleManager, TableBoard
from .models import (
    IngredientRequirement,
    InventoryRecord,
    MenuItem,
    Order,
    OrderLineItem,
    Payment,
    Table,
    is_remote_id,
)
from .numbering import OrderNumber, OrderNumberService
from .scheduler import DeductionScheduler, expired, scan
from .sync import OfflineSyncService, SyncResult

__all__ = [
    "Order",
    "OrderLineItem",
    "Payment",
    "MenuItem",
    "IngredientRequirement",
    "InventoryRecord",
    "Table",
    "is_remote_id",
    "MenuCatalog",
    "parse_menu",
    "DeductionEngine",
    "DeductionResult",
    "IngredientFailure",
    "DeductionScheduler",
    "scan",
    "expired",
    "OrderNumber",
    "OrderNumberService",
    "OfflineSyncService",
    "SyncResult",
    "CartItem",
    "CheckoutResult",
    "OrderLifecycleManager",
    "TableBoard",
    "OrderTotals",
    "calculate_totals",
    "change_due",
    "consolidate",
    "Event",
    "EventQueue",
    "EventReconciler",
    "parse_event",
    "PosConfig",
    "RemoteConfig",
    "StoreConfig",
    "DeductionConfig",
    "OrdersConfig",
    "BillingConfig",
    "load_config",
]
