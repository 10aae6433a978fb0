import asyncio
from motor.motor_asyncio import AsyncIOMotorClient
from pymongo import ASCENDING, DESCENDING, IndexModel

from grn_service.config import settings

async def init_db():
    print(f"Connecting to {settings.MONGODB_URL}...")
    client = AsyncIOMotorClient(settings.MONGODB_URL)
    db = client[settings.DB_NAME]

    # 1. GRN Requests
    print("Creating indexes on 'grn_requests'...")
    await db.grn_requests.create_indexes([
        IndexModel([("grn_no", ASCENDING)], unique=True),
        IndexModel([("po_no", ASCENDING)]),
        IndexModel([("status", ASCENDING), ("created_at", DESCENDING)]),
        IndexModel([("supplier_name", ASCENDING)]),
    ])

    # 2. Stock Entries (one per approved GRN)
    print("Creating indexes on 'stock_entries'...")
    await db.stock_entries.create_indexes([
        IndexModel([("entry_no", ASCENDING)], unique=True),
        IndexModel([("reference_name", ASCENDING)], unique=True),
        IndexModel([("entry_date", DESCENDING)]),
    ])

    # 3. Stock Balances
    print("Creating indexes on 'stock_balances'...")
    await db.stock_balances.create_indexes([
        IndexModel([("item_code", ASCENDING), ("warehouse", ASCENDING), ("batch_no", ASCENDING)], unique=True),
        IndexModel([("warehouse", ASCENDING)]),
    ])

    # 4. Counters use _id as the sequence name; nothing to index.
    # Collections must exist before they are written inside a transaction.
    existing = await db.list_collection_names()
    for name in ("counters", "grn_requests", "stock_entries", "stock_balances"):
        if name not in existing:
            await db.create_collection(name)

    print("Database initialization complete.")
    client.close()

if __name__ == "__main__":
    asyncio.run(init_db())
