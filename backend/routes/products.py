"""
XY CRM - Routes Produits
CRUD catalogue produits + recherche rapide par nom (10 résultats max).
"""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException

from config import db, now_iso
from models.catalog import ProductCreate, ProductUpdate
from services.activity_logger import log_activity
from services.deal_codes import to_amount
from services.permissions import require_company_permission
from services.query_helpers import contains, get_pagination, paginated, resolve_sort_field, sort_direction

router = APIRouter(prefix="/{company_id}", tags=["Products"])

PRODUCT_SORT_FIELDS = ["created_at", "name", "price"]
SEARCH_LIMIT = 10


def _parse_price(value) -> float:
    price = to_amount(value, default=None)
    if price is None:
        raise HTTPException(status_code=400, detail="Price must be a number")
    return price


def build_product(company_id: str, data: ProductCreate) -> dict:
    """Document produit; name, price, description obligatoires"""
    if not data.name or data.price in (None, "") or not data.description:
        raise HTTPException(status_code=400, detail="Name, price and description are required")
    return {
        "id": str(uuid.uuid4()),
        "company_id": company_id,
        "name": data.name.strip(),
        "price": _parse_price(data.price),
        "description": data.description,
        "created_at": now_iso(),
        "updated_at": now_iso(),
    }


def product_update_fields(data: ProductUpdate) -> dict:
    update_data = {}
    if data.name is not None:
        update_data["name"] = data.name.strip()
    if data.price is not None:
        update_data["price"] = _parse_price(data.price)
    if data.description is not None:
        update_data["description"] = data.description
    update_data["updated_at"] = now_iso()
    return update_data


@router.post("/products", status_code=201)
async def create_product(
    company_id: str,
    data: ProductCreate,
    user: dict = Depends(require_company_permission("catalog.manage"))
):
    product = build_product(company_id, data)
    await db.products.insert_one(product)
    product.pop("_id", None)
    await log_activity(user=user, action="create", entity_type="product", entity_id=product["id"], entity_name=product["name"])
    return {"success": True, "message": "Product created successfully", "data": product}


@router.get("/products")
async def list_products(
    company_id: str,
    id: Optional[str] = None,
    page: int = 1,
    limit: int = 10,
    search: Optional[str] = None,
    sort_by: Optional[str] = None,
    sort_order: Optional[str] = None,
    user: dict = Depends(require_company_permission("dashboard.view"))
):
    """Produit unique (?id=) ou liste paginée"""
    if id:
        product = await db.products.find_one({"id": id, "company_id": company_id}, {"_id": 0})
        if not product:
            raise HTTPException(status_code=404, detail="Product not found")
        return {"success": True, "data": product}

    query = {"company_id": company_id}
    if search:
        query["name"] = contains(search)

    skip, limit = get_pagination(page, limit)
    sort_field = resolve_sort_field(sort_by, PRODUCT_SORT_FIELDS, "created_at")

    products = await db.products.find(query, {"_id": 0}) \
        .sort(sort_field, sort_direction(sort_order)) \
        .skip(skip) \
        .limit(limit) \
        .to_list(limit)
    total = await db.products.count_documents(query)

    return paginated(products, total, max(page, 1), limit)


@router.put("/products")
async def update_product(
    company_id: str,
    data: ProductUpdate,
    id: Optional[str] = None,
    user: dict = Depends(require_company_permission("catalog.manage"))
):
    if not id:
        raise HTTPException(status_code=400, detail="Product ID is required")

    result = await db.products.update_one(
        {"id": id, "company_id": company_id}, {"$set": product_update_fields(data)}
    )
    if result.matched_count == 0:
        raise HTTPException(status_code=404, detail="Product not found")

    product = await db.products.find_one({"id": id}, {"_id": 0})
    await log_activity(user=user, action="update", entity_type="product", entity_id=id, entity_name=product.get("name"))
    return {"success": True, "message": "Product updated successfully", "data": product}


@router.delete("/products")
async def delete_product(
    company_id: str,
    id: Optional[str] = None,
    user: dict = Depends(require_company_permission("catalog.manage"))
):
    """Supprime le produit et ses visites AMS"""
    if not id:
        raise HTTPException(status_code=400, detail="Product ID is required")

    product = await db.products.find_one({"id": id, "company_id": company_id}, {"_id": 0})
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")

    await db.ams.delete_many({"product_id": id, "company_id": company_id})
    await db.products.delete_one({"id": id})
    await log_activity(user=user, action="delete", entity_type="product", entity_id=id, entity_name=product.get("name"))
    return {"success": True, "message": "Product deleted successfully"}


@router.get("/search-products")
async def search_products(
    company_id: str,
    query: Optional[str] = None,
    user: dict = Depends(require_company_permission("dashboard.view"))
):
    """Autocomplétion: 10 produits max dont le nom contient query"""
    filters = {"company_id": company_id}
    if query:
        filters["name"] = contains(query)
    products = await db.products.find(filters, {"_id": 0, "id": 1, "name": 1, "price": 1}) \
        .sort("name", 1) \
        .limit(SEARCH_LIMIT) \
        .to_list(SEARCH_LIMIT)
    return {"success": True, "data": products}
