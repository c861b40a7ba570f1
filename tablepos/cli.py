"""CLI entry point for the POS reconciliation core."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys

from dotenv import load_dotenv

from .app import PosApp, build_app
from .billing import calculate_totals
from .config import load_config


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        prog="tablepos",
        description="Restaurant POS order and inventory reconciliation",
    )
    parser.add_argument(
        "--config",
        "-c",
        type=str,
        default=None,
        help="Path to the configuration file (TOML)",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")

    sub = parser.add_subparsers(dest="command")

    sub.add_parser("sync", help="Push offline orders and payments to the server")

    deduct_parser = sub.add_parser("deduct", help="Run the inventory deduction scan")
    deduct_parser.add_argument(
        "--now", action="store_true", help="Ignore the grace period"
    )

    sub.add_parser("next-number", help="Allocate the next self-service order number")

    inventory_parser = sub.add_parser("inventory", help="Show ingredient stock")
    inventory_parser.add_argument("--json", action="store_true", help="JSON output")

    orders_parser = sub.add_parser("orders", help="Show active orders")
    orders_parser.add_argument("--json", action="store_true", help="JSON output")

    sub.add_parser("run", help="Sync, then run the scheduler until interrupted")

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    load_dotenv()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        config = load_config(args.config)
    except ValueError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        sys.exit(2)

    code = 0
    match args.command:
        case "sync":
            code = asyncio.run(_with_app(config, _cmd_sync, args))
        case "deduct":
            asyncio.run(_with_app(config, _cmd_deduct, args))
        case "next-number":
            asyncio.run(_with_app(config, _cmd_next_number, args))
        case "inventory":
            asyncio.run(_with_app(config, _cmd_inventory, args))
        case "orders":
            asyncio.run(_with_app(config, _cmd_orders, args))
        case "run":
            try:
                asyncio.run(_with_app(config, _cmd_run, args))
            except KeyboardInterrupt:
                pass
    if code:
        sys.exit(code)


async def _with_app(config, command, args):
    app = build_app(config)
    try:
        return await command(app, args)
    finally:
        await app.aclose()


async def _cmd_sync(app: PosApp, args) -> int:
    result = await app.sync.sync_pending_orders()
    print(f"Synced: {result.synced}  Failed: {result.failed}  Cleared: {result.cleared}")
    for error in result.errors:
        print(f"  {error}", file=sys.stderr)
    return 1 if result.failed else 0


async def _cmd_deduct(app: PosApp, args) -> None:
    await app.catalog.refresh(app.client)
    if args.now:
        results = app.scheduler.process_all_now()
    else:
        results = app.scheduler.run_once()

    if not results:
        print("No orders due for deduction.")
        return
    for r in results:
        state = "complete" if r.completed else "partial"
        print(f"Order {r.order_id}: {state}, {len(r.deducted_items)} items deducted")
        for f in r.failures:
            print(f"  {f.ingredient}: {f.reason} (needed {f.needed:g})")


async def _cmd_next_number(app: PosApp, args) -> None:
    allocated = await app.numbering.allocate()
    suffix = " (provisional)" if allocated.provisional else ""
    print(f"{allocated.number}{suffix}")


async def _cmd_inventory(app: PosApp, args) -> None:
    records = app.inventory.all()
    if args.json:
        data = [
            {
                "name": r.name,
                "unit": r.unit,
                "stock": r.display_stock(),
                "level": r.warning_level(),
            }
            for r in records
        ]
        print(json.dumps(data, ensure_ascii=False, indent=2))
        return

    if not records:
        print("No inventory records.")
        return
    for r in sorted(records, key=lambda x: x.name.lower()):
        pct = r.stock_percentage()
        pct_text = f"{pct:5.1f}%" if pct is not None else "    -"
        print(f"  {r.name:<20} {r.display_stock():>10g} {r.unit:<12} {pct_text}  {r.warning_level()}")


async def _cmd_orders(app: PosApp, args) -> None:
    orders = app.lifecycle.active_orders()
    if args.json:
        print(json.dumps([o.to_dict() for o in orders], ensure_ascii=False, indent=2))
        return

    if not orders:
        print("No active orders.")
        return
    billing = app.config.billing
    for o in orders:
        label = f"#{o.order_number}" if o.order_number else f"table {o.table_number}"
        sync_mark = "" if o.is_remote else " [offline]"
        deducted = "deducted" if o.ingredients_deducted else "pending deduction"
        due = calculate_totals(o.items, tax_rate=billing.tax_rate).final_amount
        print(f"{o.id} {label}{sync_mark} - {deducted} - {due:.2f} {billing.currency}")
        for item in o.items:
            print(f"    {item.quantity} x {item.name:<20} {item.status}")


async def _cmd_run(app: PosApp, args) -> None:
    result = await app.startup()
    print(f"Startup sync: {result.synced} synced, {result.failed} failed")
    app.scheduler.start()
    try:
        while True:
            await asyncio.sleep(1)
            if len(app.events):
                await app.handle_events()
    finally:
        app.scheduler.stop()
