import asyncio

from grn_service.database import db
from grn_service.models.audit import Actor
from grn_service.models.grn import GoodsReceiptNote, GRNItem
from grn_service.workflow.coordinator import approval_coordinator

SEED_GRNS = [
    {
        "po_no": "PO-1001",
        "supplier_id": "SUP-7",
        "supplier_name": "Steel Traders",
        "items": [
            {"item_code": "RM-STEEL-12", "item_name": "Steel rod 12mm", "po_qty": 10, "received_qty": 10,
             "warehouse_name": "Raw Material Store", "batch_no": "B-2401"},
        ]
    },
    {
        "po_no": "PO-2002",
        "supplier_id": "SUP-9",
        "supplier_name": "Polymers Ltd",
        "items": [
            {"item_code": "RM-PP", "item_name": "Polypropylene granules", "po_qty": 100, "received_qty": 100,
             "warehouse_name": "Store A"},
            {"item_code": "RM-PE", "item_name": "Polyethylene granules", "po_qty": 50, "received_qty": 48,
             "warehouse_name": "Store B"},
        ]
    },
]

async def seed_db():
    db.connect()
    clerk = Actor(id="seed", name="Seed Script", type="SYSTEM")

    print("Seeding GRN requests...")
    for data in SEED_GRNS:
        if await db.grns.get_by_field("po_no", data["po_no"]):
            print(f"  {data['po_no']} already seeded, skipping")
            continue
        grn = GoodsReceiptNote(
            grn_no="",
            po_no=data["po_no"],
            supplier_id=data["supplier_id"],
            supplier_name=data["supplier_name"],
            items=[GRNItem(**item) for item in data["items"]]
        )
        created = await approval_coordinator.create_grn(grn, clerk)
        print(f"  {created.grn_no} ({created.po_no}, {len(created.items)} items)")

    print("Seeding complete.")
    db.close()

if __name__ == "__main__":
    asyncio.run(seed_db())
