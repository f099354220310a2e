"""
XY CRM - Routes Clients
Email unique par société. La suppression d'un client supprime
ses paiements, ses deals et ses visites AMS.
"""

import logging
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException

from config import db, normalize_email, now_iso
from models.customer import CustomerCreate, CustomerUpdate
from services.activity_logger import log_activity
from services.permissions import require_company_permission
from services.query_helpers import contains, get_pagination, resolve_sort_field, sort_direction, total_pages

logger = logging.getLogger("customers")

router = APIRouter(prefix="/{company_id}/customers", tags=["Customers"])

CUSTOMER_SORT_FIELDS = ["created_at", "customer_name", "email", "mobile_number", "updated_at"]
OPTIONAL_FIELDS = [
    "gst_number",
    "cin_number",
    "business_legal_name",
    "authorized_person_name",
    "whatsapp_number",
]
SEARCH_LIMIT = 10


async def embed_categories(customers: list) -> list:
    category_ids = {c.get("category_id") for c in customers if c.get("category_id")}
    categories = {
        c["id"]: c async for c in db.categories.find({"id": {"$in": list(category_ids)}}, {"_id": 0})
    }
    for customer in customers:
        customer["category"] = categories.get(customer.get("category_id"))
    return customers


async def ensure_unique_email(company_id: str, email: str, exclude_id: Optional[str] = None):
    query = {"company_id": company_id, "email": email}
    if exclude_id:
        query["id"] = {"$ne": exclude_id}
    if await db.customers.find_one(query):
        raise HTTPException(status_code=400, detail="email must be unique")


async def check_category(company_id: str, category_id: Optional[str]):
    if category_id and not await db.categories.find_one({"id": category_id, "company_id": company_id}):
        raise HTTPException(status_code=404, detail="Category not found")


@router.post("", status_code=201)
async def create_customer(
    company_id: str,
    data: CustomerCreate,
    user: dict = Depends(require_company_permission("customers.manage"))
):
    """Création d'un client; un lead lié passe au statut CUSTOMER"""
    required = ("customer_name", "email", "address", "state_district_pin", "mobile_number")
    if any(not getattr(data, f) for f in required):
        raise HTTPException(status_code=400, detail=f"Missing required fields: {', '.join(required)}")

    email = normalize_email(data.email)
    await ensure_unique_email(company_id, email)
    await check_category(company_id, data.category_id)

    lead = None
    if data.lead_id:
        lead = await db.leads.find_one({"id": data.lead_id, "company_id": company_id}, {"_id": 0})
        if not lead:
            raise HTTPException(status_code=404, detail="Lead not found")

    customer = {
        "id": str(uuid.uuid4()),
        "company_id": company_id,
        "customer_name": data.customer_name.strip(),
        "email": email,
        "address": data.address,
        "state_district_pin": data.state_district_pin,
        "mobile_number": data.mobile_number,
        "category_id": data.category_id,
        "lead_id": data.lead_id,
        "created_by": user["id"],
        "created_at": now_iso(),
        "updated_at": now_iso(),
    }
    for field in OPTIONAL_FIELDS:
        customer[field] = getattr(data, field)

    await db.customers.insert_one(customer)
    customer.pop("_id", None)

    if lead:
        await db.leads.update_one(
            {"id": lead["id"]}, {"$set": {"status": "CUSTOMER", "updated_at": now_iso()}}
        )

    await log_activity(user=user, action="create", entity_type="customer", entity_id=customer["id"], entity_name=customer["customer_name"])
    return {"success": True, "message": "Customer created successfully", "data": customer}


@router.get("")
async def list_customers(
    company_id: str,
    page: int = 1,
    page_size: int = 10,
    search: Optional[str] = None,
    category: Optional[str] = None,
    sort_field: Optional[str] = None,
    sort_order: Optional[str] = None,
    user: dict = Depends(require_company_permission("customers.manage"))
):
    query = {"company_id": company_id}
    if search:
        pattern = contains(search)
        query["$or"] = [{"customer_name": pattern}, {"email": pattern}, {"mobile_number": pattern}]
    if category:
        query["category_id"] = category

    skip, page_size = get_pagination(page, page_size)
    field = resolve_sort_field(sort_field, CUSTOMER_SORT_FIELDS, "created_at")

    customers = await db.customers.find(query, {"_id": 0}) \
        .sort(field, sort_direction(sort_order)) \
        .skip(skip) \
        .limit(page_size) \
        .to_list(page_size)
    total = await db.customers.count_documents(query)

    return {
        "data": await embed_categories(customers),
        "meta": {
            "total_count": total,
            "current_page": max(page, 1),
            "page_size": page_size,
            "total_pages": total_pages(total, page_size),
        },
    }


@router.get("/search")
async def search_customers(
    company_id: str,
    query: Optional[str] = None,
    user: dict = Depends(require_company_permission("dashboard.view"))
):
    """Autocomplétion: 10 clients max {id, customer_name}"""
    if not query or not query.strip():
        raise HTTPException(status_code=400, detail="Query parameter is required")

    return await db.customers.find(
        {"company_id": company_id, "customer_name": contains(query.strip())},
        {"_id": 0, "id": 1, "customer_name": 1}
    ).sort("customer_name", 1).limit(SEARCH_LIMIT).to_list(SEARCH_LIMIT)


@router.put("")
async def update_customer(
    company_id: str,
    data: CustomerUpdate,
    id: Optional[str] = None,
    user: dict = Depends(require_company_permission("customers.manage"))
):
    """Mise à jour; la catégorie existante est conservée si non fournie"""
    if not id:
        raise HTTPException(status_code=400, detail="Customer ID is required")
    if not data.customer_name or not data.email:
        raise HTTPException(status_code=400, detail="Missing required fields: customer_name, email")

    existing = await db.customers.find_one({"id": id, "company_id": company_id}, {"_id": 0})
    if not existing:
        raise HTTPException(status_code=404, detail="Customer not found")

    email = normalize_email(data.email)
    await ensure_unique_email(company_id, email, exclude_id=id)
    await check_category(company_id, data.category_id)

    update_data = {
        "customer_name": data.customer_name.strip(),
        "email": email,
        "category_id": data.category_id or existing.get("category_id"),
        "updated_at": now_iso(),
    }
    for field in ["address", "state_district_pin", "mobile_number"] + OPTIONAL_FIELDS:
        value = getattr(data, field)
        if value is not None:
            update_data[field] = value

    await db.customers.update_one({"id": id}, {"$set": update_data})
    await log_activity(user=user, action="update", entity_type="customer", entity_id=id, entity_name=update_data["customer_name"])

    customer = await db.customers.find_one({"id": id}, {"_id": 0})
    return {"success": True, "message": "Customer updated successfully", "data": (await embed_categories([customer]))[0]}


@router.delete("")
async def delete_customer(
    company_id: str,
    id: Optional[str] = None,
    user: dict = Depends(require_company_permission("customers.manage"))
):
    """Cascade: paiements -> deals -> AMS -> client"""
    if not id:
        raise HTTPException(status_code=400, detail="Customer ID is required")

    customer = await db.customers.find_one({"id": id, "company_id": company_id}, {"_id": 0})
    if not customer:
        raise HTTPException(status_code=404, detail="Customer not found")

    deal_ids = [d["id"] async for d in db.deals.find({"customer_id": id, "company_id": company_id}, {"id": 1})]
    payments = await db.payments.delete_many({"deal_id": {"$in": deal_ids}})
    deals = await db.deals.delete_many({"id": {"$in": deal_ids}})
    ams = await db.ams.delete_many({"customer_id": id, "company_id": company_id})
    await db.customers.delete_one({"id": id})

    details = {
        "payments_deleted": payments.deleted_count,
        "deals_deleted": deals.deleted_count,
        "ams_deleted": ams.deleted_count,
    }
    logger.info(f"[CUSTOMER] Deleted {id} {details}")
    await log_activity(
        user=user,
        action="delete",
        entity_type="customer",
        entity_id=id,
        entity_name=customer.get("customer_name"),
        details=details
    )
    return {"success": True, "message": "Customer deleted successfully"}
