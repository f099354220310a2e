"""
XY CRM - Routes Leads
CRUD leads d'une société + import xlsx en masse.
"""

import logging
import uuid
from datetime import timedelta
from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, File, HTTPException, UploadFile

from config import DEFAULT_FOLLOWUP_DAYS, db, now_iso, parse_datetime, to_iso, utcnow
from email_service import email_service
from models.lead import LeadCreate, LeadUpdate
from services.activity_logger import log_activity
from services.bulk_upload import build_lead_from_row
from services.lead_filters import build_lead_query
from services.permissions import require_company_permission
from services.query_helpers import contains, get_pagination, paginated, sort_direction
from services.spreadsheet import SpreadsheetError, read_rows

logger = logging.getLogger("leads")

router = APIRouter(prefix="/{company_id}/lead", tags=["Leads"])


# ==================== HELPERS ====================

async def embed_lead_relations(leads: List[dict]) -> List[dict]:
    """Ajoute employee, products et source à chaque lead (3 requêtes au total)"""
    employee_ids = {l.get("employee_id") for l in leads if l.get("employee_id")}
    source_ids = {l.get("source_id") for l in leads if l.get("source_id")}
    product_ids = {p for l in leads for p in (l.get("product_ids") or [])}

    employees = {
        e["id"]: e async for e in db.employees.find(
            {"id": {"$in": list(employee_ids)}},
            {"_id": 0, "id": 1, "name": 1, "email": 1, "profile_img": 1}
        )
    }
    sources = {
        s["id"]: s async for s in db.sources.find({"id": {"$in": list(source_ids)}}, {"_id": 0})
    }
    products = {
        p["id"]: p async for p in db.products.find({"id": {"$in": list(product_ids)}}, {"_id": 0})
    }

    for lead in leads:
        lead["employee"] = employees.get(lead.get("employee_id"))
        lead["source"] = sources.get(lead.get("source_id"))
        lead["products"] = [products[p] for p in (lead.get("product_ids") or []) if p in products]
    return leads


async def lead_search_clause(company_id: str, search: str) -> dict:
    """$or sur les champs du lead et les noms de produit / employé / source"""
    pattern = contains(search)
    product_ids = [p["id"] async for p in db.products.find({"company_id": company_id, "name": pattern}, {"id": 1})]
    employee_ids = [e["id"] async for e in db.employees.find({"company_id": company_id, "name": pattern}, {"id": 1})]
    source_ids = [s["id"] async for s in db.sources.find({"company_id": company_id, "source": pattern}, {"id": 1})]

    clauses = [
        {"name": pattern},
        {"phone": pattern},
        {"email": pattern},
        {"company_name": pattern},
    ]
    if product_ids:
        clauses.append({"product_ids": {"$in": product_ids}})
    if employee_ids:
        clauses.append({"employee_id": {"$in": employee_ids}})
    if source_ids:
        clauses.append({"source_id": {"$in": source_ids}})
    return {"$or": clauses}


async def check_lead_references(company_id: str, employee_id: Optional[str],
                                source_id: Optional[str], product_ids: Optional[List[str]]) -> Optional[dict]:
    """404 si l'employé, la source ou un produit n'appartient pas à la société. Retourne l'employé."""
    employee = None
    if employee_id:
        employee = await db.employees.find_one(
            {"id": employee_id, "company_id": company_id, "is_deleted": {"$ne": True}}, {"_id": 0, "password": 0}
        )
        if not employee:
            raise HTTPException(status_code=404, detail="Employee not found")
    if source_id and not await db.sources.find_one({"id": source_id, "company_id": company_id}):
        raise HTTPException(status_code=404, detail="Source not found")
    if product_ids:
        found = await db.products.count_documents({"id": {"$in": product_ids}, "company_id": company_id})
        if found != len(set(product_ids)):
            raise HTTPException(status_code=404, detail="Product not found")
    return employee


def _followup_date(value: Optional[str], default_days: int = DEFAULT_FOLLOWUP_DAYS) -> str:
    if not value:
        return to_iso(utcnow() + timedelta(days=default_days))
    parsed = parse_datetime(value)
    if parsed is None:
        raise HTTPException(status_code=400, detail=f"Invalid next_followup_date: {value}")
    return to_iso(parsed)


# ==================== CRUD ====================

@router.post("", status_code=201)
async def create_lead(
    company_id: str,
    data: LeadCreate,
    background_tasks: BackgroundTasks,
    user: dict = Depends(require_company_permission("leads.manage"))
):
    """Création d'un lead; l'employé assigné est prévenu par email"""
    if not data.name or not data.phone or not data.place or not data.source_id:
        raise HTTPException(status_code=400, detail="Required fields are missing: name, phone, place, source_id")

    employee = await check_lead_references(company_id, data.employee_id, data.source_id, data.product_ids)

    lead = {
        "id": str(uuid.uuid4()),
        "company_id": company_id,
        "name": data.name.strip(),
        "email": data.email.strip().lower() if data.email else None,
        "phone": data.phone.strip(),
        "company_name": data.company_name,
        "employee_id": data.employee_id,
        "product_ids": list(dict.fromkeys(data.product_ids)),
        "status": data.status or "NEW",
        "priority": data.priority or "medium",
        "designation": data.designation,
        "description": data.description,
        "next_followup_date": _followup_date(data.next_followup_date),
        "place": data.place,
        "source_id": data.source_id,
        "created_by": user["id"],
        "created_at": now_iso(),
        "updated_at": now_iso(),
    }
    await db.leads.insert_one(lead)
    lead.pop("_id", None)

    if employee and employee.get("email"):
        background_tasks.add_task(email_service.send_lead_assigned, employee["email"], employee.get("name", ""), lead)

    await log_activity(user=user, action="create", entity_type="lead", entity_id=lead["id"], entity_name=lead["name"])
    logger.info(f"[LEAD] Created {lead['id']} company={company_id} employee={lead['employee_id']}")

    return {"success": True, "message": "Lead created successfully", "data": (await embed_lead_relations([lead]))[0]}


@router.get("")
async def list_leads(
    company_id: str,
    lead_id: Optional[str] = None,
    page: int = 1,
    limit: int = 10,
    employee_id: Optional[str] = None,
    status: Optional[str] = None,
    priority: Optional[str] = None,
    product_id: Optional[str] = None,
    source_id: Optional[str] = None,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    today: Optional[str] = None,
    search: Optional[str] = None,
    sort_order: Optional[str] = None,
    user: dict = Depends(require_company_permission("leads.view"))
):
    """Lead unique (?lead_id=) ou liste filtrée, triée et paginée"""
    if lead_id:
        lead = await db.leads.find_one({"id": lead_id, "company_id": company_id}, {"_id": 0})
        if not lead:
            raise HTTPException(status_code=404, detail="Lead not found")
        return {"success": True, "data": (await embed_lead_relations([lead]))[0]}

    query = build_lead_query(
        company_id,
        employee_id=employee_id,
        status=status,
        priority=priority,
        product_id=product_id,
        source_id=source_id,
        start_date=start_date,
        end_date=end_date,
        today=today,
    )
    if search:
        query.update(await lead_search_clause(company_id, search))

    skip, limit = get_pagination(page, limit)
    direction = sort_direction(sort_order)

    leads = await db.leads.find(query, {"_id": 0}) \
        .sort([("created_at", direction), ("priority", direction), ("status", direction)]) \
        .skip(skip) \
        .limit(limit) \
        .to_list(limit)
    total = await db.leads.count_documents(query)

    return paginated(await embed_lead_relations(leads), total, max(page, 1), limit)


@router.put("")
async def update_lead(
    company_id: str,
    data: LeadUpdate,
    lead_id: Optional[str] = None,
    user: dict = Depends(require_company_permission("leads.manage"))
):
    if not lead_id:
        raise HTTPException(status_code=400, detail="Lead ID is required")
    if not data.name or not data.phone or not data.status or not data.priority or not data.source_id:
        raise HTTPException(status_code=400, detail="Missing required fields: name, phone, status, priority, source_id")

    existing = await db.leads.find_one({"id": lead_id, "company_id": company_id}, {"_id": 0})
    if not existing:
        raise HTTPException(status_code=404, detail="Lead not found or does not belong to your company")

    await check_lead_references(company_id, data.employee_id, data.source_id, data.product_ids)

    update_data = {
        "name": data.name.strip(),
        "phone": data.phone.strip(),
        "status": data.status,
        "priority": data.priority,
        "source_id": data.source_id,
        "updated_at": now_iso(),
    }
    for field in ("email", "place", "company_name", "designation", "description", "employee_id"):
        value = getattr(data, field)
        if value is not None:
            update_data[field] = value
    if data.email:
        update_data["email"] = data.email.strip().lower()
    if data.product_ids is not None:
        update_data["product_ids"] = list(dict.fromkeys(data.product_ids))
    if data.next_followup_date:
        update_data["next_followup_date"] = _followup_date(data.next_followup_date)

    await db.leads.update_one({"id": lead_id}, {"$set": update_data})

    await log_activity(
        user=user,
        action="update",
        entity_type="lead",
        entity_id=lead_id,
        entity_name=update_data["name"],
        details={"status": [existing.get("status"), data.status]} if existing.get("status") != data.status else None
    )

    lead = await db.leads.find_one({"id": lead_id}, {"_id": 0})
    return {"success": True, "message": "Lead updated successfully", "data": (await embed_lead_relations([lead]))[0]}


@router.delete("")
async def delete_lead(
    company_id: str,
    lead_id: Optional[str] = None,
    user: dict = Depends(require_company_permission("leads.manage"))
):
    """Supprime le lead et ses follow-ups"""
    if not lead_id:
        raise HTTPException(status_code=400, detail="Lead ID is required")

    lead = await db.leads.find_one({"id": lead_id, "company_id": company_id}, {"_id": 0})
    if not lead:
        raise HTTPException(status_code=404, detail="Lead not found or does not belong to your company")

    followups = await db.followups.delete_many({"lead_id": lead_id})
    await db.leads.delete_one({"id": lead_id})

    await log_activity(
        user=user,
        action="delete",
        entity_type="lead",
        entity_id=lead_id,
        entity_name=lead.get("name"),
        details={"followups_deleted": followups.deleted_count}
    )
    return {"success": True, "message": "Lead and its follow-ups deleted successfully"}


# ==================== IMPORT XLSX ====================

@router.post("/bulk-upload")
async def bulk_upload_leads(
    company_id: str,
    file: UploadFile = File(...),
    user: dict = Depends(require_company_permission("leads.manage"))
):
    """
    Import d'un classeur xlsx (ligne 1 = en-têtes).
    Les lignes valides sont insérées même si d'autres échouent;
    400 avec la liste {row, message} dès qu'une ligne est en erreur.
    """
    content = await file.read()
    if not content:
        raise HTTPException(status_code=400, detail="File is required")

    try:
        rows = read_rows(content)
    except SpreadsheetError as e:
        raise HTTPException(status_code=400, detail=str(e))

    source_ids = {
        s["source"].lower(): s["id"]
        async for s in db.sources.find({"company_id": company_id}, {"_id": 0, "id": 1, "source": 1})
    }
    employee_ids = {
        e["name"].lower(): e["id"]
        async for e in db.employees.find(
            {"company_id": company_id, "is_deleted": {"$ne": True}}, {"_id": 0, "id": 1, "name": 1}
        )
    }

    leads = []
    errors = []
    for row_number, record in rows:
        lead, error = build_lead_from_row(record, company_id, source_ids, employee_ids)
        if error:
            errors.append({"row": row_number, "message": error})
            continue
        lead["created_by"] = user["id"]
        leads.append(lead)

    if leads:
        await db.leads.insert_many(leads)

    logger.info(
        f"[BULK_UPLOAD] company={company_id} file={file.filename} "
        f"inserted={len(leads)} errors={len(errors)}"
    )
    await log_activity(
        user=user,
        action="upload",
        entity_type="lead",
        entity_name=file.filename,
        details={"inserted": len(leads), "errors": len(errors)}
    )

    if errors:
        raise HTTPException(
            status_code=400,
            detail={"message": "Bulk upload completed with errors.", "inserted": len(leads), "errors": errors}
        )
    return {"success": True, "message": "Bulk upload successful.", "inserted": len(leads)}
