import pytest
from httpx import ASGITransport, AsyncClient

from grn_service.main import app
from grn_service.workflow.coordinator import approval_coordinator

CLERK = {"X-User-Id": "clerk", "X-User-Role": "store_clerk"}
INSPECTOR = {"X-User-Id": "qc1", "X-User-Name": "QC One", "X-User-Role": "inspector"}
STORE = {"X-User-Id": "inv1", "X-User-Role": "inventory_manager"}
ADMIN = {"X-User-Id": "boss", "X-User-Role": "admin"}

GRN_PAYLOAD = {
    "po_no": "PO-1001",
    "supplier_name": "Steel Traders",
    "items": [
        {"item_code": "RM-STEEL-12", "po_qty": 10, "received_qty": 10, "warehouse_name": "Raw Material Store"}
    ]
}

@pytest.fixture
def wired_db(fake_db, monkeypatch):
    monkeypatch.setattr(approval_coordinator, "db", fake_db)
    monkeypatch.setattr(approval_coordinator.inspection, "db", fake_db)
    monkeypatch.setattr("grn_service.api.stock.db", fake_db)
    return fake_db

@pytest.fixture
async def client(wired_db):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

async def _awaiting(client, accepted=7, rejected=3, headers=INSPECTOR):
    response = await client.post("/api/grn-requests/", json=GRN_PAYLOAD, headers=CLERK)
    assert response.status_code == 201
    grn = response.json()
    await client.post(f"/api/grn-requests/{grn['id']}/start-inspection", headers=headers)
    item_id = grn["items"][0]["id"]
    response = await client.post(
        f"/api/grn-requests/{grn['id']}/items/{item_id}/inspect",
        json={"accepted_qty": accepted, "rejected_qty": rejected},
        headers=headers
    )
    assert response.status_code == 200
    response = await client.post(f"/api/grn-requests/{grn['id']}/send-to-inventory", headers=headers)
    assert response.status_code == 200
    return response.json()

@pytest.mark.asyncio
async def test_health_check(client):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"

@pytest.mark.asyncio
async def test_missing_identity_unauthorized(client):
    response = await client.get("/api/grn-requests/")
    assert response.status_code == 401

@pytest.mark.asyncio
async def test_create_and_get(client):
    response = await client.post("/api/grn-requests/", json=GRN_PAYLOAD, headers=CLERK)
    assert response.status_code == 201
    body = response.json()
    assert body["grn_no"].startswith("GRN-")
    assert body["status"] == "pending"
    assert body["items"][0]["item_status"] == "pending"
    assert body["items"][0]["uom"] == "Kg"

    response = await client.get(f"/api/grn-requests/{body['id']}", headers=CLERK)
    assert response.status_code == 200
    assert response.json()["grn_no"] == body["grn_no"]

    response = await client.get("/api/grn-requests/", params={"po_no": "PO-1001"}, headers=CLERK)
    assert [g["id"] for g in response.json()] == [body["id"]]

@pytest.mark.asyncio
async def test_create_requires_items_and_positive_qty(client):
    response = await client.post("/api/grn-requests/", json={"po_no": "PO-1", "items": []}, headers=CLERK)
    assert response.status_code == 422
    bad = {"po_no": "PO-1", "items": [{"item_code": "A", "received_qty": 0}]}
    response = await client.post("/api/grn-requests/", json=bad, headers=CLERK)
    assert response.status_code == 422

@pytest.mark.asyncio
async def test_viewer_cannot_create(client):
    response = await client.post("/api/grn-requests/", json=GRN_PAYLOAD,
                                 headers={"X-User-Id": "v", "X-User-Role": "viewer"})
    assert response.status_code == 403

@pytest.mark.asyncio
async def test_unknown_grn_is_404(client):
    response = await client.get("/api/grn-requests/65a000000000000000000009", headers=CLERK)
    assert response.status_code == 404
    assert response.json()["error"] == "NotFound"

@pytest.mark.asyncio
async def test_full_approval_over_http(client, wired_db):
    grn = await _awaiting(client)
    assert grn["status"] == "awaiting_inventory_approval"
    assert grn["items"][0]["item_status"] == "partially_accepted"

    response = await client.post(f"/api/grn-requests/{grn['id']}/inventory-approve", headers=STORE)
    assert response.status_code == 200
    approved = response.json()
    assert approved["status"] == "approved"

    response = await client.get("/api/stock/balances", params={"item_code": "RM-STEEL-12"}, headers=STORE)
    assert response.status_code == 200
    assert [(b["warehouse"], b["qty"]) for b in response.json()] == [("Raw Material Store", 7)]

    response = await client.get(f"/api/stock/entries/{approved['grn_no']}", headers=STORE)
    assert response.status_code == 200
    assert response.json()["entry_no"] == approved["stock_entry_no"]

    response = await client.get(f"/api/grn-requests/{grn['id']}/logs", headers=STORE)
    assert [e["status_to"] for e in response.json()] == ["inspecting", "awaiting_inventory_approval", "approved"]

    # Second approval is a stale request
    response = await client.post(f"/api/grn-requests/{grn['id']}/inventory-approve", headers=STORE)
    assert response.status_code == 409
    assert response.json()["error"] == "InvalidState"
    assert len(wired_db.ledger.entries) == 1

@pytest.mark.asyncio
async def test_inspection_over_received_is_422(client):
    response = await client.post("/api/grn-requests/", json=GRN_PAYLOAD, headers=CLERK)
    grn = response.json()
    await client.post(f"/api/grn-requests/{grn['id']}/start-inspection", headers=INSPECTOR)
    response = await client.post(
        f"/api/grn-requests/{grn['id']}/items/{grn['items'][0]['id']}/inspect",
        json={"accepted_qty": 8, "rejected_qty": 3},
        headers=INSPECTOR
    )
    assert response.status_code == 422
    assert response.json()["error"] == "InvalidQuantity"

@pytest.mark.asyncio
async def test_send_back_needs_reason(client):
    grn = await _awaiting(client)
    response = await client.post(f"/api/grn-requests/{grn['id']}/send-back", headers=STORE)
    assert response.status_code == 422
    assert response.json()["error"] == "MissingReason"

    response = await client.post(f"/api/grn-requests/{grn['id']}/send-back",
                                 json={"reason": "Batch labels wrong"}, headers=STORE)
    assert response.status_code == 200
    assert response.json()["status"] == "sent_back"

@pytest.mark.asyncio
async def test_inspector_cannot_approve(client):
    grn = await _awaiting(client)
    response = await client.post(f"/api/grn-requests/{grn['id']}/inventory-approve", headers=INSPECTOR)
    assert response.status_code == 403

@pytest.mark.asyncio
async def test_submitter_cannot_approve(client):
    grn = await _awaiting(client, headers=ADMIN)
    response = await client.post(f"/api/grn-requests/{grn['id']}/inventory-approve", headers=ADMIN)
    assert response.status_code == 403

    response = await client.post(f"/api/grn-requests/{grn['id']}/inventory-approve", headers=STORE)
    assert response.status_code == 200

@pytest.mark.asyncio
async def test_delete_and_stats(client):
    response = await client.post("/api/grn-requests/", json=GRN_PAYLOAD, headers=CLERK)
    grn = response.json()

    response = await client.get("/api/grn-requests/stats", headers=CLERK)
    assert response.json()["pending"] == 1

    response = await client.delete(f"/api/grn-requests/{grn['id']}", headers=CLERK)
    assert response.status_code == 204
    response = await client.get("/api/grn-requests/stats", headers=CLERK)
    assert response.json()["pending"] == 0

@pytest.mark.asyncio
async def test_pdf_download(client):
    response = await client.post("/api/grn-requests/", json=GRN_PAYLOAD, headers=CLERK)
    grn = response.json()
    response = await client.get(f"/api/grn-requests/{grn['id']}/pdf", headers=CLERK)
    assert response.status_code == 200
    assert response.headers["content-type"] == "application/pdf"
    assert response.content.startswith(b"%PDF")

@pytest.mark.asyncio
async def test_list_filters_by_creator(client):
    response = await client.post("/api/grn-requests/", json=GRN_PAYLOAD, headers=CLERK)
    mine = response.json()
    await client.post("/api/grn-requests/", json=GRN_PAYLOAD, headers=ADMIN)

    response = await client.get("/api/grn-requests/", params={"created_by": "clerk"}, headers=CLERK)
    assert response.status_code == 200
    assert [g["id"] for g in response.json()] == [mine["id"]]
