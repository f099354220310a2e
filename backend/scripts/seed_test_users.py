"""
XY CRM - Seed Test Users (dev/staging only)
Creates a demo company, one admin and one employee per access level,
all with predictable credentials.
Run: python scripts/seed_test_users.py
Reset: python scripts/seed_test_users.py --reset
"""

import asyncio
import sys
import uuid
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from config import client, db, hash_password, now_iso  # noqa: E402

# Same password for all test accounts
TEST_PASSWORD = "XyTest2026!"

DEMO_DOMAIN = "demo.test.local"

TEST_ADMINS = [
    {"email": "admin@test.local", "name": "Admin Demo", "access_level": "ADMIN"},
]

TEST_EMPLOYEES = [
    {"email": "all_access@test.local", "name": "All Access Demo", "access_level": "ALL_ACCESS"},
    {"email": "leads@test.local", "name": "Leads Demo", "access_level": "LEADS"},
    {"email": "followups@test.local", "name": "Follow-ups Demo", "access_level": "FOLLOW_UPS"},
    {"email": "customer@test.local", "name": "Customer Demo", "access_level": "CUSTOMER"},
    {"email": "deals@test.local", "name": "Deals Demo", "access_level": "DEALS"},
    {"email": "ams@test.local", "name": "AMS Demo", "access_level": "AMS"},
]


async def reset():
    """Delete the demo company and every test.local account"""
    company = await db.companies.find_one({"domain": DEMO_DOMAIN})
    account_ids = [
        a["id"]
        for collection in (db.admins, db.employees)
        async for a in collection.find({"email": {"$regex": "@test\\.local$"}}, {"id": 1})
    ]
    admins = await db.admins.delete_many({"email": {"$regex": "@test\\.local$"}})
    employees = await db.employees.delete_many({"email": {"$regex": "@test\\.local$"}})
    await db.sessions.delete_many({"user_id": {"$in": account_ids}})
    if company:
        await db.companies.delete_one({"id": company["id"]})
    print(f"Deleted {admins.deleted_count} admins, {employees.deleted_count} employees")


async def seed():
    """Create the demo company and its accounts"""
    company = {
        "id": str(uuid.uuid4()),
        "name": "Demo Company",
        "domain": DEMO_DOMAIN,
        "logo_url": None,
        "gstin": "27AAACD0000A1Z5",
        "cin": "U00000MH2026PTC000000",
        "license_count": len(TEST_ADMINS) + len(TEST_EMPLOYEES),
        "register_address": "1 Demo Street",
        "mobile": "9000000000",
        "email": "contact@test.local",
        "company_access": "FULL",
        "created_at": now_iso(),
        "updated_at": now_iso(),
    }
    await db.companies.insert_one(company)
    print(f"  Company: {company['name']} ({company['id']})")

    for collection, accounts in ((db.admins, TEST_ADMINS), (db.employees, TEST_EMPLOYEES)):
        for a in accounts:
            await collection.insert_one({
                "id": str(uuid.uuid4()),
                "email": a["email"],
                "password": hash_password(TEST_PASSWORD),
                "name": a["name"],
                "company_id": company["id"],
                "access_level": a["access_level"],
                "profile_img": None,
                "is_active": True,
                "failed_login_attempts": 0,
                "created_at": now_iso(),
                "updated_at": now_iso(),
            })
            print(f"  Created: {a['email']} ({a['access_level']})")


async def main():
    if "--reset" in sys.argv:
        await reset()
        print("Reset complete. Run without --reset to re-seed.")
    else:
        await reset()
        await seed()
        total = len(TEST_ADMINS) + len(TEST_EMPLOYEES)
        print(f"\n{total} test accounts seeded. Password for all: {TEST_PASSWORD}")
        print("Reset: python scripts/seed_test_users.py --reset")

    client.close()


if __name__ == "__main__":
    asyncio.run(main())
