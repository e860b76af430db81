import asyncio
from datetime import date

import pytest
from fastapi import status
from httpx import AsyncClient

from app.models.shared.enums import SyncTrigger
from app.schemas.cache.payloads import SOCachePayload
from app.schemas.inventory.sales_order import SODetailItem, SOOutstandingRecord

from accurate_fakes import invoice, item_row, item_stock, line, order, ref

INVOICE_LIST = "/sales-invoice/list.do"
INVOICE_DETAIL = "/sales-invoice/detail.do"
ITEM_LIST = "/item/list.do"
ITEM_DETAIL = "/item/detail.do"


@pytest.fixture
def world(accurate):
    accurate.add_list(INVOICE_LIST, [ref(1, "05/01/2025", branch_id=1), ref(2, "10/02/2025", branch_id=2)])
    accurate.add_detail(INVOICE_DETAIL, 1, invoice(1, "05/01/2025", [line("BRG-1", 30, 1500)], branch_id=1))
    accurate.add_detail(INVOICE_DETAIL, 2, invoice(2, "10/02/2025", [line("BRG-1", 20, 1500)], branch_id=2))
    accurate.add_list(ITEM_LIST, [item_row(1, "BRG-1", quantity=40, unit_price=1500, cost=1000),
                                  item_row(2, "BRG-2", quantity=0, unit_price=800, cost=500)])
    accurate.add_detail(ITEM_DETAIL, "BRG-1", item_stock("BRG-1", {1: 25, 2: 15}))
    accurate.add_detail(ITEM_DETAIL, "BRG-2", item_stock("BRG-2", {}))
    accurate.add_list("/branch/list.do", [{"id": 1, "name": "Pusat", "defaultBranch": True}, {"id": 2, "name": "Surabaya"}])
    accurate.add_list("/warehouse/list.do", [{"id": 1, "name": "Gudang Utama"}])
    return accurate


async def wait_until_idle(coordinator, timeout: float = 5.0):
    async def poll():
        while coordinator.is_running:
            await asyncio.sleep(0.01)
    await asyncio.wait_for(poll(), timeout)


class TestService:
    async def test_root(self, client: AsyncClient):
        response = await client.get("/")
        assert response.status_code == status.HTTP_200_OK
        assert response.json()["status"] == "active"

    async def test_health(self, client: AsyncClient):
        response = await client.get("/api/v1/health")
        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["status"] == "healthy"
        assert data["components"]["database"] == "connected"
        assert data["components"]["scheduler"] == "inactive"
        assert data["components"]["sync"] == "idle"


class TestSyncEndpoints:
    async def test_idle_status(self, client: AsyncClient):
        response = await client.get("/api/v1/sync/status")
        assert response.status_code == status.HTTP_200_OK
        assert response.json()["status"] == "idle"
        assert response.json()["progress"] == 0

    async def test_sync_then_analyse(self, client: AsyncClient, services, world):
        response = await client.post("/api/v1/sync", json={"from_date": "2025-01-01"})
        assert response.status_code == status.HTTP_202_ACCEPTED
        assert response.json()["state"]["status"] == "running"

        await wait_until_idle(services.coordinator)
        state = (await client.get("/api/v1/sync/status")).json()
        assert state["status"] == "done"
        assert state["progress"] == 100
        assert state["invoice_count"] == 2

        response = await client.get("/api/v1/inventory/analysis", params={"from": "2025-01-01", "to": "2025-03-31"})
        assert response.status_code == status.HTTP_200_OK
        items = {i["item_no"]: i for i in response.json()}
        assert items["BRG-1"]["data_source"] == "API"
        assert items["BRG-1"]["total_sales_qty"] == 50
        assert [m["month"] for m in items["BRG-1"]["monthly_sales"]] == ["Jan", "Feb", "Mar"]

        response = await client.get("/api/v1/inventory/analysis",
                                    params={"from": "2025-01-01", "to": "2025-03-31", "warehouse": 2})
        assert {i["item_no"]: i["stock"] for i in response.json()} == {"BRG-1": 15, "BRG-2": 0}

        response = await client.get("/api/v1/inventory/analysis",
                                    params={"from": "2025-01-01", "to": "2025-03-31", "branch": 2})
        branch_items = {i["item_no"]: i for i in response.json()}
        assert branch_items["BRG-1"]["total_sales_qty"] == 20

        history = (await client.get("/api/v1/scheduler")).json()["history"]
        assert history[0]["status"] == "SUCCESS"
        assert history[0]["trigger"] == "manual"

    async def test_busy_sync_returns_conflict(self, client: AsyncClient, services, world):
        token = services.coordinator.state.try_acquire("inventory")
        try:
            response = await client.post("/api/v1/sync")
            assert response.status_code == status.HTTP_409_CONFLICT
            assert "already running" in response.json()["detail"]

            response = await client.post("/api/v1/sales-orders/sync")
            assert response.status_code == status.HTTP_409_CONFLICT
        finally:
            services.coordinator.state.release(token)
        assert world.requests == []

    async def test_rejects_non_positive_branch(self, client: AsyncClient):
        response = await client.post("/api/v1/sync", json={"branch_id": 0})
        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY


class TestInventoryEndpoints:
    async def test_estimated_without_cache(self, client: AsyncClient, world):
        response = await client.get("/api/v1/inventory/analysis", params={"from": "2025-01-01", "to": "2025-03-31"})
        assert response.status_code == status.HTTP_200_OK
        assert {i["data_source"] for i in response.json()} == {"ESTIMATED"}

    async def test_summary(self, client: AsyncClient, world):
        response = await client.get("/api/v1/inventory/summary", params={"from": "2025-01-01", "to": "2025-03-31"})
        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["total_sku"] == 2
        assert data["data_source"] == "ESTIMATED"

    async def test_inverted_range(self, client: AsyncClient, world):
        response = await client.get("/api/v1/inventory/analysis", params={"from": "2025-03-01", "to": "2025-01-01"})
        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

    async def test_invalid_branch_filter(self, client: AsyncClient):
        response = await client.get("/api/v1/inventory/analysis", params={"branch": 0})
        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

    async def test_branches(self, client: AsyncClient, world):
        response = await client.get("/api/v1/branches")
        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert [b["name"] for b in data["branches"]] == ["Pusat", "Surabaya"]
        assert data["warehouses"][0]["name"] == "Gudang Utama"


class TestSalesOrderEndpoints:
    async def test_without_cache(self, client: AsyncClient):
        response = await client.get("/api/v1/sales-orders")
        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["so_list"] == []
        assert data["message"]

    async def test_filtered_list(self, client: AsyncClient, services, world):
        orders = [
            SOOutstandingRecord(id=1, so_number="SO-1", trans_date=date(2025, 2, 1), branch_id=1,
                                status_name="Menunggu diproses", total_outstanding=5,
                                detail_items=[SODetailItem(item_no="BRG-1", quantity=5, outstanding=5)]),
            SOOutstandingRecord(id=2, so_number="SO-2", trans_date=date(2025, 2, 3), branch_id=2,
                                status_name="Sebagian diproses", total_outstanding=2,
                                detail_items=[SODetailItem(item_no="BRG-2", quantity=4, ship_quantity=2, outstanding=2)]),
        ]
        await services.cache.commit(SOCachePayload(so_count=2, orders=orders))

        response = await client.get("/api/v1/sales-orders", params={"branch": 1})
        data = response.json()
        assert data["total"] == 1
        assert data["so_list"][0]["so_number"] == "SO-1"
        assert data["so_list"][0]["detail_items"][0]["stock"] == 40

        response = await client.get("/api/v1/sales-orders", params={"status": "sebagian diproses"})
        assert [so["id"] for so in response.json()["so_list"]] == [2]

    async def test_branch_scoped_sync(self, client: AsyncClient, services, world):
        world.add_list("/sales-order/list.do", [ref(300, "01/02/2025", branch_id=2, status_name="Menunggu diproses")])
        world.add_detail("/sales-order/detail.do", 300, order(300, "Menunggu diproses", [line("BRG-1", 6, 1500)], branch_id=2))

        response = await client.post("/api/v1/sales-orders/sync", json={"branch_id": 2})
        assert response.status_code == status.HTTP_202_ACCEPTED
        await wait_until_idle(services.coordinator)

        [listing] = [r for r in world.requests if r.url.path == "/sales-order/list.do"]
        assert listing.url.params["filter.branchId.val"] == "2"

        data = (await client.get("/api/v1/sales-orders", params={"branch": 2})).json()
        assert [so["id"] for so in data["so_list"]] == [300]
        assert data["so_list"][0]["detail_items"][0]["stock"] == 40


class TestSchedulerEndpoints:
    async def test_default_status(self, client: AsyncClient):
        response = await client.get("/api/v1/scheduler")
        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["config"]["enabled"] is False
        assert data["config"]["cron_expression"] == "0 */4 * * *"
        assert data["is_running"] is False
        assert data["history"] == []

    async def test_invalid_cron_is_rejected(self, client: AsyncClient):
        response = await client.put("/api/v1/scheduler/config", json={"cron_expression": "every 4 hours"})
        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
        config = (await client.get("/api/v1/scheduler")).json()["config"]
        assert config["cron_expression"] == "0 */4 * * *"

    async def test_update_config(self, client: AsyncClient, services):
        response = await client.put("/api/v1/scheduler/config", json={
            "enabled": True, "cron_expression": "0 6 * * *", "interval_label": "Daily 06:00", "branch_id": 2,
        })
        assert response.status_code == status.HTTP_200_OK
        assert response.json()["config"]["cron_expression"] == "0 6 * * *"

        data = (await client.get("/api/v1/scheduler")).json()
        assert data["config"]["branch_id"] == 2
        assert data["is_running"] is True
        assert data["cron_active"] is True
        await services.scheduler.stop()

    async def test_trigger(self, client: AsyncClient, services, world):
        response = await client.post("/api/v1/scheduler/trigger")
        assert response.status_code == status.HTTP_202_ACCEPTED
        await wait_until_idle(services.coordinator)

        history = await services.sync_logs.list_recent()
        assert history[0].trigger == SyncTrigger.MANUAL
        assert services.coordinator.status().status.value == "done"
