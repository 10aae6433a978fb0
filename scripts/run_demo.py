import asyncio
import argparse
from grn_service.database import db
from grn_service.exceptions import GRNError
from grn_service.models.audit import Actor
from grn_service.models.grn import GoodsReceiptNote, GRNItem
from grn_service.workflow.coordinator import approval_coordinator
from grn_service.workflow.inspection import InspectionResult

CLERK = Actor(id="clerk1", name="Store Clerk")
INSPECTOR = Actor(id="qc1", name="QC Inspector")
STORE = Actor(id="inv1", name="Inventory Manager")

async def run_scenario(scenario_name: str):
    print(f"--- Running Scenario: {scenario_name} ---")
    grn = GoodsReceiptNote(
        grn_no="",
        po_no="PO-DEMO-001",
        supplier_name="Demo Supplier",
        items=[GRNItem(item_code="RM-DEMO", item_name="Demo material", po_qty=10, received_qty=10,
                       warehouse_name="Raw Material Store")]
    )
    try:
        grn = await approval_coordinator.create_grn(grn, CLERK)
        print(f"Created {grn.grn_no}")
        await approval_coordinator.start_inspection(grn.id, INSPECTOR)
        await approval_coordinator.record_item_inspection(
            grn.id, grn.items[0].id, InspectionResult(accepted_qty=7, rejected_qty=3, notes="3 bent"), INSPECTOR
        )
        await approval_coordinator.submit_for_inventory_approval(grn.id, INSPECTOR)

        if scenario_name == "send_back":
            await approval_coordinator.send_back(grn.id, "Recount the bent rods", STORE)
            await approval_coordinator.start_inspection(grn.id, INSPECTOR)
            await approval_coordinator.record_item_inspection(
                grn.id, grn.items[0].id, InspectionResult(accepted_qty=8, rejected_qty=2), INSPECTOR
            )
            await approval_coordinator.submit_for_inventory_approval(grn.id, INSPECTOR)
        elif scenario_name == "reject":
            grn = await approval_coordinator.reject(grn.id, "Wrong grade delivered", STORE)
            print(f"Result Status: {grn.status.value}")
            return

        grn = await approval_coordinator.inventory_approve(grn.id, STORE)
        print(f"Result Status: {grn.status.value} (stock entry {grn.stock_entry_no})")
        for entry in grn.logs:
            print(f"  {entry.created_at:%H:%M:%S} {entry.status_from} -> {entry.status_to} "
                  f"by {entry.actor.display_name}{' : ' + entry.reason if entry.reason else ''}")
    except GRNError as e:
        print(f"Error running scenario: {e.kind}: {e.message}")

if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Run GRN inspection & approval demo scenarios")
    parser.add_argument("--scenario", type=str, default="approve", choices=["approve", "send_back", "reject"])
    args = parser.parse_args()

    async def main():
        db.connect()
        try:
            await run_scenario(args.scenario)
        finally:
            db.close()

    asyncio.run(main())
