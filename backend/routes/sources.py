"""
XY CRM - Routes Sources de leads
"""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException

from config import db, now_iso
from models.catalog import SourceCreate, SourceUpdate
from services.activity_logger import log_activity
from services.permissions import require_company_permission
from services.query_helpers import contains, get_pagination, paginated, resolve_sort_field, sort_direction

router = APIRouter(prefix="/{company_id}/sources", tags=["Sources"])

SOURCE_SORT_FIELDS = ["created_at", "source"]


@router.post("", status_code=201)
async def create_source(
    company_id: str,
    data: SourceCreate,
    user: dict = Depends(require_company_permission("catalog.manage"))
):
    source = {
        "id": str(uuid.uuid4()),
        "company_id": company_id,
        "source": data.source,
        "created_at": now_iso(),
        "updated_at": now_iso(),
    }
    await db.sources.insert_one(source)
    source.pop("_id", None)
    await log_activity(user=user, action="create", entity_type="source", entity_id=source["id"], entity_name=source["source"])
    return {"success": True, "message": "Source created successfully", "data": source}


@router.get("")
async def list_sources(
    company_id: str,
    id: Optional[str] = None,
    page: int = 1,
    limit: int = 10,
    search: Optional[str] = None,
    sort_by: Optional[str] = None,
    sort_order: Optional[str] = None,
    user: dict = Depends(require_company_permission("dashboard.view"))
):
    """Source unique (?id=) ou liste paginée"""
    if id:
        source = await db.sources.find_one({"id": id, "company_id": company_id}, {"_id": 0})
        if not source:
            raise HTTPException(status_code=404, detail="Source not found")
        return {"success": True, "data": source}

    query = {"company_id": company_id}
    if search:
        query["source"] = contains(search)

    skip, limit = get_pagination(page, limit)
    sort_field = resolve_sort_field(sort_by, SOURCE_SORT_FIELDS, "created_at")

    sources = await db.sources.find(query, {"_id": 0}) \
        .sort(sort_field, sort_direction(sort_order)) \
        .skip(skip) \
        .limit(limit) \
        .to_list(limit)
    total = await db.sources.count_documents(query)

    return paginated(sources, total, max(page, 1), limit)


@router.put("")
async def update_source(
    company_id: str,
    data: SourceUpdate,
    id: Optional[str] = None,
    user: dict = Depends(require_company_permission("catalog.manage"))
):
    if not id:
        raise HTTPException(status_code=400, detail="Source ID is required")
    if not data.source or not data.source.strip():
        raise HTTPException(status_code=400, detail="Source is required")

    result = await db.sources.update_one(
        {"id": id, "company_id": company_id},
        {"$set": {"source": data.source.strip(), "updated_at": now_iso()}}
    )
    if result.matched_count == 0:
        raise HTTPException(status_code=404, detail="Source not found")

    source = await db.sources.find_one({"id": id}, {"_id": 0})
    await log_activity(user=user, action="update", entity_type="source", entity_id=id, entity_name=source["source"])
    return {"success": True, "message": "Source updated successfully", "data": source}


@router.delete("")
async def delete_source(
    company_id: str,
    id: Optional[str] = None,
    user: dict = Depends(require_company_permission("catalog.manage"))
):
    """Supprime la source; les leads concernés perdent leur source"""
    if not id:
        raise HTTPException(status_code=400, detail="Source ID is required")

    result = await db.sources.delete_one({"id": id, "company_id": company_id})
    if result.deleted_count == 0:
        raise HTTPException(status_code=404, detail="Source not found")

    await db.leads.update_many(
        {"company_id": company_id, "source_id": id},
        {"$set": {"source_id": None, "updated_at": now_iso()}}
    )
    await log_activity(user=user, action="delete", entity_type="source", entity_id=id)
    return {"success": True, "message": "Source deleted successfully"}
