"""Tests for the offline sync service."""

from unittest.mock import AsyncMock

import pytest

from tablepos.db import MemoryStore, OrderRepository, TableRepository
from tablepos.errors import RemoteUnavailableError
from tablepos.lifecycle import TableBoard
from tablepos.models import Order, OrderLineItem, Payment
from tablepos.sync import OfflineSyncService, pending_sync

NOW = 1_718_000_000.0
LOCAL_ID = "1718000000000"
REMOTE_ID = "3f2b8c1e-9a4d-4e7b-8f6a-1c2d3e4f5a6b"


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def orders(store):
    return OrderRepository(store)


@pytest.fixture
def board(store, orders):
    return TableBoard(TableRepository(store), orders)


@pytest.fixture
def client():
    return AsyncMock()


@pytest.fixture
def service(orders, client, board):
    return OfflineSyncService(orders, client, board, clock=lambda: NOW)


def _offline_order(order_id=LOCAL_ID, **kwargs):
    items = [OrderLineItem(id="dal", name="Dal", price=100, quantity=2, sub_id="dal-1")]
    return Order(id=order_id, table_number="4", items=items, saved_at=NOW, **kwargs)


class TestPendingSync:
    def test_queue_membership(self):
        orders = [
            _offline_order("1"),
            _offline_order(REMOTE_ID),
            _offline_order("2", status="completed"),
            Order(id="7c1d2e3f-0000-4000-8000-000000000001", status="completed", payment_synced=False),
            Order(id="7c1d2e3f-0000-4000-8000-000000000002", status="completed", payment_synced=True),
        ]
        assert [o.id for o in pending_sync(orders)] == [
            "1",
            REMOTE_ID,
            "2",
            "7c1d2e3f-0000-4000-8000-000000000001",
        ]


class TestSyncPendingOrders:
    @pytest.mark.asyncio
    async def test_remote_ids_count_without_network(self, service, orders, client):
        orders.save(_offline_order(REMOTE_ID))
        result = await service.sync_pending_orders()
        assert result.synced == 1
        client.create_order.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_creates_and_rekeys(self, service, orders, client, board):
        orders.save(_offline_order(table_id="t1"))
        board.occupy("t1", LOCAL_ID)
        client.create_order.return_value = {"id": REMOTE_ID}

        result = await service.sync_pending_orders()

        assert (result.synced, result.failed) == (1, 0)
        assert orders.get(LOCAL_ID) is None
        assert orders.get(REMOTE_ID).items[0].quantity == 2
        assert board.holder("t1") == REMOTE_ID
        request = client.create_order.await_args.args[0]
        assert request["table_number"] == "4"
        assert request["items"] == [{"menu_item_id": "dal", "quantity": 2, "notes": ""}]
        client.occupy_table.assert_awaited_once_with("t1", REMOTE_ID)

    @pytest.mark.asyncio
    async def test_failure_keeps_entry_without_duplicates(self, service, orders, client):
        orders.save(_offline_order())
        client.create_order.side_effect = RemoteUnavailableError("offline")

        for _ in range(3):
            result = await service.sync_pending_orders()
            assert (result.synced, result.failed) == (0, 1)
            assert result.errors

        assert [o.id for o in orders.all()] == [LOCAL_ID]

        client.create_order.side_effect = None
        client.create_order.return_value = {"id": REMOTE_ID}
        result = await service.sync_pending_orders()
        assert result.synced == 1
        assert [o.id for o in orders.all()] == [REMOTE_ID]

        await service.sync_pending_orders()
        assert client.create_order.await_count == 4

    @pytest.mark.asyncio
    async def test_missing_id_counts_as_failure(self, service, orders, client):
        orders.save(_offline_order())
        client.create_order.return_value = {}
        result = await service.sync_pending_orders()
        assert result.failed == 1
        assert orders.get(LOCAL_ID) is not None

    @pytest.mark.asyncio
    async def test_offline_paid_order_pushed_then_cleared(self, service, orders, client):
        orders.save(
            _offline_order(
                status="completed",
                payment=Payment(method="cash", amount_received=300, change_returned=90),
                expires_at=NOW,
            )
        )
        client.create_order.return_value = {"id": REMOTE_ID}

        result = await service.sync_pending_orders()

        assert (result.synced, result.cleared) == (1, 1)
        client.complete_payment.assert_awaited_once_with(
            REMOTE_ID,
            {"payment_method": "cash", "amount_received": 300, "change_returned": 90},
        )
        assert orders.all() == []

    @pytest.mark.asyncio
    async def test_paid_order_kept_until_display_window_ends(self, service, orders, client):
        orders.save(
            _offline_order(
                REMOTE_ID,
                status="completed",
                payment=Payment(method="upi", amount_received=210),
                expires_at=NOW + 600,
            )
        )
        result = await service.sync_pending_orders()
        assert (result.synced, result.cleared) == (1, 0)
        assert orders.get(REMOTE_ID).payment_synced is True

    @pytest.mark.asyncio
    async def test_payment_failure_keeps_order_queued(self, service, orders, client):
        orders.save(
            _offline_order(
                REMOTE_ID,
                status="completed",
                payment=Payment(method="upi", amount_received=210),
                expires_at=NOW,
            )
        )
        client.complete_payment.side_effect = RemoteUnavailableError("offline")
        result = await service.sync_pending_orders()
        assert result.failed == 1
        assert orders.get(REMOTE_ID).payment_synced is False

    @pytest.mark.asyncio
    async def test_empty_queue(self, service, client):
        result = await service.sync_pending_orders()
        assert (result.synced, result.failed, result.cleared) == (0, 0, 0)

    @pytest.mark.asyncio
    async def test_collision_check_after_provisional_sync(self, orders, client):
        numbering = AsyncMock()
        service = OfflineSyncService(orders, client, None, numbering, clock=lambda: NOW)
        orders.save(_offline_order(order_number=8, order_number_provisional=True))
        client.create_order.return_value = {"id": REMOTE_ID}
        await service.sync_pending_orders()
        numbering.find_collisions.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_collision_check_runs_once_per_order(self, orders, client):
        numbering = AsyncMock()
        service = OfflineSyncService(orders, client, None, numbering, clock=lambda: NOW)
        orders.save(_offline_order(order_number=8, order_number_provisional=True))
        client.create_order.return_value = {"id": REMOTE_ID}

        await service.sync_pending_orders()
        await service.sync_pending_orders()

        numbering.find_collisions.assert_awaited_once()
        assert orders.get(REMOTE_ID).order_number_provisional is False


class TestUnsentAdditions:
    @pytest.mark.asyncio
    async def test_unsent_items_pushed_and_cleared(self, service, orders, client):
        orders.save(
            _offline_order(
                REMOTE_ID,
                unsent_items=[{"menu_item_id": "dal", "quantity": 1, "notes": ""}],
            )
        )

        result = await service.sync_pending_orders()

        assert result.synced == 1
        client.update_order.assert_awaited_once_with(
            REMOTE_ID,
            {
                "table_number": "4",
                "customer_name": None,
                "items": [{"menu_item_id": "dal", "quantity": 1, "notes": ""}],
                "notes": "",
            },
        )
        assert orders.get(REMOTE_ID).unsent_items == []

    @pytest.mark.asyncio
    async def test_failed_push_keeps_unsent_items(self, service, orders, client):
        unsent = [{"menu_item_id": "dal", "quantity": 1, "notes": ""}]
        orders.save(_offline_order(REMOTE_ID, unsent_items=list(unsent)))
        client.update_order.side_effect = RemoteUnavailableError("offline")

        result = await service.sync_pending_orders()

        assert result.failed == 1
        assert orders.get(REMOTE_ID).unsent_items == unsent

    def test_completed_order_with_unsent_items_stays_queued(self):
        order = _offline_order(
            REMOTE_ID,
            status="completed",
            payment_synced=True,
            unsent_items=[{"menu_item_id": "dal", "quantity": 1, "notes": ""}],
        )
        assert pending_sync([order]) == [order]
