"""
XY CRM - Routes Catégories clients
"""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException

from config import db, now_iso
from models.catalog import CategoryCreate, CategoryUpdate
from services.activity_logger import log_activity
from services.permissions import require_company_permission
from services.query_helpers import contains, get_pagination, paginated

router = APIRouter(prefix="/{company_id}/category", tags=["Categories"])


@router.get("")
async def list_categories(
    company_id: str,
    page: int = 1,
    limit: int = 10,
    query: Optional[str] = None,
    user: dict = Depends(require_company_permission("dashboard.view"))
):
    """Liste paginée, triée par nom"""
    filters = {"company_id": company_id}
    if query:
        filters["name"] = contains(query)

    skip, limit = get_pagination(page, limit)
    categories = await db.categories.find(filters, {"_id": 0}) \
        .sort("name", 1) \
        .skip(skip) \
        .limit(limit) \
        .to_list(limit)
    total = await db.categories.count_documents(filters)

    return paginated(categories, total, max(page, 1), limit)


@router.post("", status_code=201)
async def create_category(
    company_id: str,
    data: CategoryCreate,
    user: dict = Depends(require_company_permission("catalog.manage"))
):
    category = {
        "id": str(uuid.uuid4()),
        "company_id": company_id,
        "name": data.name,
        "description": data.description,
        "created_at": now_iso(),
        "updated_at": now_iso(),
    }
    await db.categories.insert_one(category)
    category.pop("_id", None)
    await log_activity(user=user, action="create", entity_type="category", entity_id=category["id"], entity_name=category["name"])
    return {"success": True, "message": "Category created successfully", "data": category}


@router.put("")
async def update_category(
    company_id: str,
    data: CategoryUpdate,
    id: Optional[str] = None,
    user: dict = Depends(require_company_permission("catalog.manage"))
):
    if not id or not data.name or not data.name.strip():
        raise HTTPException(status_code=400, detail="Category ID and name are required")

    update_data = {"name": data.name.strip(), "updated_at": now_iso()}
    if data.description is not None:
        update_data["description"] = data.description

    result = await db.categories.update_one({"id": id, "company_id": company_id}, {"$set": update_data})
    if result.matched_count == 0:
        raise HTTPException(status_code=404, detail="Category not found")

    category = await db.categories.find_one({"id": id}, {"_id": 0})
    return {"success": True, "message": "Category updated successfully", "data": category}


@router.delete("")
async def delete_category(
    company_id: str,
    id: Optional[str] = None,
    user: dict = Depends(require_company_permission("catalog.manage"))
):
    """Supprime la catégorie; les clients concernés n'ont plus de catégorie"""
    if not id:
        raise HTTPException(status_code=400, detail="Category ID is required")

    result = await db.categories.delete_one({"id": id, "company_id": company_id})
    if result.deleted_count == 0:
        raise HTTPException(status_code=404, detail="Category not found")

    await db.customers.update_many(
        {"company_id": company_id, "category_id": id},
        {"$set": {"category_id": None, "updated_at": now_iso()}}
    )
    await log_activity(user=user, action="delete", entity_type="category", entity_id=id)
    return {"success": True, "message": "Category deleted successfully"}
