"""In-process stand-in for the Accurate API, served through httpx.MockTransport"""
from typing import Any, Dict, List, Optional, Set

import httpx

from app.services.accurate.client import AccurateClient

BASE_URL = "http://accurate.test"


class FakeAccurate:
    def __init__(self):
        self.lists: Dict[str, List[Dict[str, Any]]] = {}
        self.details: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self.detail_failures: Dict[tuple, int] = {}
        self.broken_paths: Set[str] = set()
        self.list_error_page: Dict[str, int] = {}
        self.list_false_page: Dict[str, int] = {}
        self.requests: List[httpx.Request] = []

    # ─── Setup helpers ────────────────────────────────────────

    def add_list(self, path: str, rows: List[Dict[str, Any]]):
        self.lists.setdefault(path, []).extend(rows)

    def add_detail(self, path: str, key: Any, payload: Dict[str, Any]):
        self.details.setdefault(path, {})[str(key)] = payload

    def fail_detail(self, path: str, key: Any, times: int):
        self.detail_failures[(path, str(key))] = times

    def calls_to(self, path: str, key: Optional[Any] = None) -> int:
        return sum(
            1 for r in self.requests
            if r.url.path == path and (key is None or str(key) in (r.url.params.get("id"), r.url.params.get("no")))
        )

    # ─── Transport ────────────────────────────────────────────

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path in self.broken_paths:
            return httpx.Response(500, json={"s": False, "d": ["boom"]})
        if path.endswith("/list.do"):
            return self._list(path, request.url.params)
        if path.endswith("/detail.do"):
            return self._detail(path, request.url.params)
        return httpx.Response(404)

    def _list(self, path: str, params) -> httpx.Response:
        page = int(params.get("sp.page", 1))
        size = int(params.get("sp.pageSize", 100))
        if self.list_error_page.get(path) == page:
            return httpx.Response(503, json={"s": False})
        if self.list_false_page.get(path) == page:
            return httpx.Response(200, json={"s": False, "d": ["rate limited"]})
        rows = self.lists.get(path, [])
        branch = params.get("filter.branchId.val")
        if branch is not None:
            rows = [r for r in rows if r.get("branchId") == int(branch)]
        start = (page - 1) * size
        return httpx.Response(200, json={"s": True, "d": rows[start:start + size]})

    def _detail(self, path: str, params) -> httpx.Response:
        key = params.get("id") or params.get("no")
        remaining = self.detail_failures.get((path, key), 0)
        if remaining > 0:
            self.detail_failures[(path, key)] = remaining - 1
            return httpx.Response(500, json={"s": False, "d": ["temporary failure"]})
        payload = self.details.get(path, {}).get(key)
        if payload is None:
            return httpx.Response(200, json={"s": False, "d": ["Data tidak ditemukan"]})
        return httpx.Response(200, json={"s": True, "d": payload})

    def client(self) -> AccurateClient:
        return AccurateClient(
            base_url=BASE_URL,
            api_token="test-token",
            signature_secret="test-secret",
            db_id="42",
            transport=httpx.MockTransport(self.handler),
        )


# ─── Record builders (Accurate JSON shapes) ───────────────────

def line(item_no: str, quantity: float, unit_price: float = 0, quantity_in_base: Optional[float] = None,
         total_price: Optional[float] = None, unit: str = "PCS", ship: Optional[float] = None,
         name: str = "") -> Dict[str, Any]:
    row: Dict[str, Any] = {
        "item": {"no": item_no, "name": name or item_no},
        "quantity": quantity,
        "unitPrice": unit_price,
        "itemUnitName": unit,
    }
    if quantity_in_base is not None:
        row["quantityInBase"] = quantity_in_base
    if total_price is not None:
        row["totalPrice"] = total_price
    if ship is not None:
        row["shipQuantity"] = ship
    return row


def invoice(id: int, trans_date: str, lines: List[Dict[str, Any]], branch_id: Optional[int] = None) -> Dict[str, Any]:
    doc: Dict[str, Any] = {"id": id, "number": f"SI-{id}", "transDate": trans_date, "detailItem": lines}
    if branch_id is not None:
        doc["branchId"] = branch_id
    return doc


def order(id: int, status_name: str, lines: List[Dict[str, Any]], trans_date: str = "10/02/2025",
          branch_id: Optional[int] = None, customer: str = "PT Maju") -> Dict[str, Any]:
    doc = invoice(id, trans_date, lines, branch_id)
    doc["number"] = f"ORD-{id}"
    doc["statusName"] = status_name
    doc["customer"] = {"name": customer}
    return doc


def ref(id: int, trans_date: str = "01/01/2025", branch_id: Optional[int] = None,
        status_name: Optional[str] = None) -> Dict[str, Any]:
    row: Dict[str, Any] = {"id": id, "transDate": trans_date}
    if branch_id is not None:
        row["branchId"] = branch_id
    if status_name is not None:
        row["statusName"] = status_name
    return row


def item_row(id: int, no: str, quantity: float = 0, unit_price: float = 0, cost: float = 0,
             item_type: str = "INVENTORY", unit: str = "PCS") -> Dict[str, Any]:
    return {
        "id": id, "no": no, "name": f"Item {no}", "itemType": item_type,
        "quantity": quantity, "unitPrice": unit_price, "cost": cost, "unit1Name": unit,
    }


def item_stock(no: str, warehouses: Dict[int, float]) -> Dict[str, Any]:
    return {
        "no": no,
        "detailWarehouseData": [
            {"id": wid, "name": f"Gudang {wid}", "unit1Quantity": qty} for wid, qty in warehouses.items()
        ],
    }
