"""
XY CRM - Routes AMS (visites de maintenance)

Un contrat de N visites/an génère N visites espacées de 12 // N mois.
"""

import logging
import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException

from config import db, now_iso, parse_datetime, to_iso
from models.ams import AmsCreate, AmsEdit, AmsStatusUpdate
from services.activity_logger import log_activity
from services.ams_schedule import VALID_AMS_STATUSES, schedule_visits
from services.deal_codes import to_amount
from services.lead_filters import upcoming_window_filter
from services.permissions import require_company_permission
from services.query_helpers import contains, get_pagination, paginated, resolve_sort_field, sort_direction

logger = logging.getLogger("ams")

router = APIRouter(prefix="/{company_id}/ams", tags=["AMS"])

AMS_SORT_FIELDS = ["visit_date", "created_at", "status", "ams_cost"]


async def embed_ams_relations(records: List[dict]) -> List[dict]:
    """Ajoute product, customer et employee à chaque visite"""
    product_ids = {r.get("product_id") for r in records}
    customer_ids = {r.get("customer_id") for r in records}
    employee_ids = {r.get("employee_id") for r in records}

    products = {p["id"]: p async for p in db.products.find({"id": {"$in": list(product_ids)}}, {"_id": 0})}
    customers = {c["id"]: c async for c in db.customers.find({"id": {"$in": list(customer_ids)}}, {"_id": 0})}
    employees = {
        e["id"]: e async for e in db.employees.find(
            {"id": {"$in": list(employee_ids)}}, {"_id": 0, "id": 1, "name": 1, "email": 1}
        )
    }

    for record in records:
        record["product"] = products.get(record.get("product_id"))
        record["customer"] = customers.get(record.get("customer_id"))
        record["employee"] = employees.get(record.get("employee_id"))
    return records


def _normalize_status(value: Optional[str]) -> Optional[str]:
    status = (value or "").strip().upper()
    return status if status in VALID_AMS_STATUSES else None


@router.post("", status_code=201)
async def create_ams(
    company_id: str,
    data: AmsCreate,
    user: dict = Depends(require_company_permission("ams.manage"))
):
    if not all([data.customer_id, data.product_id, data.visit_date, data.employee_id,
                data.ams_cost not in (None, ""), data.no_of_visits_per_year not in (None, "")]):
        raise HTTPException(status_code=400, detail="Missing required fields")

    first_visit = parse_datetime(data.visit_date)
    if first_visit is None:
        raise HTTPException(status_code=400, detail="Invalid visit_date")
    try:
        visits_per_year = int(data.no_of_visits_per_year)
    except (TypeError, ValueError):
        raise HTTPException(status_code=400, detail="no_of_visits_per_year must be a positive integer")
    if visits_per_year <= 0:
        raise HTTPException(status_code=400, detail="no_of_visits_per_year must be a positive integer")

    ams_cost = to_amount(data.ams_cost, default=None)
    if ams_cost is None or ams_cost < 0:
        raise HTTPException(status_code=400, detail="Invalid ams_cost")

    status = "SCHEDULED"
    if data.status:
        status = _normalize_status(data.status)
        if not status:
            raise HTTPException(status_code=400, detail=f"Invalid status. Allowed: {', '.join(VALID_AMS_STATUSES)}")

    if not await db.customers.find_one({"id": data.customer_id, "company_id": company_id}):
        raise HTTPException(status_code=404, detail="Customer not found")
    if not await db.products.find_one({"id": data.product_id, "company_id": company_id}):
        raise HTTPException(status_code=404, detail="Product not found")
    if not await db.employees.find_one({"id": data.employee_id, "company_id": company_id, "is_deleted": {"$ne": True}}):
        raise HTTPException(status_code=404, detail="Employee not found")

    visits = []
    for number, visit_date in enumerate(schedule_visits(first_visit, visits_per_year), start=1):
        record = {
            "id": str(uuid.uuid4()),
            "company_id": company_id,
            "customer_id": data.customer_id,
            "product_id": data.product_id,
            "employee_id": data.employee_id,
            "visit_date": to_iso(visit_date),
            "status": status,
            "ams_cost": ams_cost,
            "created_by": user["id"],
            "created_at": now_iso(),
            "updated_at": now_iso(),
        }
        visits.append({"visit_number": number, "visit_date": record["visit_date"], "ams_record": record})

    await db.ams.insert_many([dict(v["ams_record"]) for v in visits])

    logger.info(f"[AMS] Scheduled {len(visits)} visits customer={data.customer_id} product={data.product_id}")
    await log_activity(
        user=user,
        action="create",
        entity_type="ams",
        entity_id=data.customer_id,
        details={"visits": len(visits), "first_visit": visits[0]["visit_date"]}
    )
    return {"success": True, "message": "AMS visits scheduled successfully", "visits": visits}


@router.get("")
async def list_ams(
    company_id: str,
    id: Optional[str] = None,
    product_query: Optional[str] = None,
    today: Optional[str] = None,
    status: Optional[str] = None,
    search: Optional[str] = None,
    page: int = 1,
    limit: int = 10,
    sort_by: Optional[str] = None,
    sort_order: Optional[str] = None,
    user: dict = Depends(require_company_permission("ams.manage"))
):
    """Recherche produit (?product_query=), visite unique (?id=) ou liste paginée"""
    if product_query:
        products = await db.products.find(
            {"company_id": company_id, "name": contains(product_query)}, {"_id": 0}
        ).sort("name", 1).to_list(50)
        return {"success": True, "data": products}

    if id:
        record = await db.ams.find_one({"id": id, "company_id": company_id}, {"_id": 0})
        if not record:
            raise HTTPException(status_code=404, detail="AMS record not found")
        return {"success": True, "data": (await embed_ams_relations([record]))[0]}

    query = {"company_id": company_id}
    window = upcoming_window_filter(today) if today else None
    if window:
        query["visit_date"] = window
    if status:
        normalized = _normalize_status(status)
        if not normalized:
            raise HTTPException(status_code=400, detail=f"Invalid status. Allowed: {', '.join(VALID_AMS_STATUSES)}")
        query["status"] = normalized

    skip, limit = get_pagination(page, limit)
    if search:
        customer_ids = [
            c["id"] async for c in db.customers.find({"company_id": company_id, "customer_name": contains(search)}, {"id": 1})
        ]
        if not customer_ids:
            return paginated([], 0, max(page, 1), limit)
        query["customer_id"] = {"$in": customer_ids}

    field = resolve_sort_field(sort_by, AMS_SORT_FIELDS, "visit_date")
    records = await db.ams.find(query, {"_id": 0}) \
        .sort(field, sort_direction(sort_order)) \
        .skip(skip) \
        .limit(limit) \
        .to_list(limit)
    total = await db.ams.count_documents(query)

    return paginated(await embed_ams_relations(records), total, max(page, 1), limit)


@router.put("")
async def update_ams_status(
    company_id: str,
    data: AmsStatusUpdate,
    id: Optional[str] = None,
    user: dict = Depends(require_company_permission("ams.manage"))
):
    if not id:
        raise HTTPException(status_code=400, detail="AMS ID is required")
    status = _normalize_status(data.status)
    if not status:
        raise HTTPException(status_code=400, detail=f"Invalid status. Allowed: {', '.join(VALID_AMS_STATUSES)}")

    result = await db.ams.update_one(
        {"id": id, "company_id": company_id},
        {"$set": {"status": status, "updated_at": now_iso()}}
    )
    if result.matched_count == 0:
        raise HTTPException(status_code=404, detail="AMS record not found")

    await log_activity(user=user, action="update", entity_type="ams", entity_id=id, details={"status": status})
    return {"success": True, "message": "AMS status updated successfully", "data": await db.ams.find_one({"id": id}, {"_id": 0})}


@router.put("/edit")
async def edit_ams(
    company_id: str,
    data: AmsEdit,
    id: Optional[str] = None,
    user: dict = Depends(require_company_permission("ams.manage"))
):
    """Modification partielle: date de visite, statut, coût"""
    if not id:
        raise HTTPException(status_code=400, detail="AMS ID is required")

    existing = await db.ams.find_one({"id": id, "company_id": company_id}, {"_id": 0})
    if not existing:
        raise HTTPException(status_code=404, detail="AMS record not found")

    update_data = {}
    if data.visit_date:
        visit_date = parse_datetime(data.visit_date)
        if visit_date is None:
            raise HTTPException(status_code=400, detail="Invalid visit_date")
        update_data["visit_date"] = to_iso(visit_date)
    if data.status:
        status = _normalize_status(data.status)
        if not status:
            raise HTTPException(status_code=400, detail=f"Invalid status. Allowed: {', '.join(VALID_AMS_STATUSES)}")
        update_data["status"] = status
    if data.ams_cost not in (None, ""):
        cost = to_amount(data.ams_cost, default=None)
        if cost is None or cost < 0:
            raise HTTPException(status_code=400, detail="Invalid ams_cost")
        update_data["ams_cost"] = cost

    if not update_data:
        raise HTTPException(status_code=400, detail="No valid fields to update")

    update_data["updated_at"] = now_iso()
    await db.ams.update_one({"id": id}, {"$set": update_data})
    await log_activity(user=user, action="update", entity_type="ams", entity_id=id, details={"fields": sorted(update_data)})

    record = await db.ams.find_one({"id": id}, {"_id": 0})
    return {"success": True, "message": "AMS record updated successfully", "data": (await embed_ams_relations([record]))[0]}


@router.delete("")
async def delete_ams(
    company_id: str,
    id: Optional[str] = None,
    user: dict = Depends(require_company_permission("ams.manage"))
):
    if not id:
        raise HTTPException(status_code=400, detail="AMS ID is required")

    result = await db.ams.delete_one({"id": id, "company_id": company_id})
    if result.deleted_count == 0:
        raise HTTPException(status_code=404, detail="AMS record not found")

    await log_activity(user=user, action="delete", entity_type="ams", entity_id=id)
    return {"success": True, "message": "AMS record deleted successfully"}
