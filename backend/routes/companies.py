"""
XY CRM - Routes Société
Fiche société, gestion des employés (limite de licences) et catalogue produits.
"""

import logging
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException

from config import DEFAULT_EMPLOYEE_PASSWORD, db, hash_password, now_iso
from models.auth import CompanyEmployeeCreate, EmployeeUpdate
from models.catalog import ProductCreate, ProductUpdate
from routes.auth import (
    check_license_limit,
    email_taken,
    get_current_user,
    soft_delete_employee,
    write_account,
)
from routes.products import build_product, product_update_fields
from services.activity_logger import log_activity
from services.permissions import ensure_same_company, require_company_permission

logger = logging.getLogger("companies")

router = APIRouter(prefix="/company/{company_id}", tags=["Company"])

EMPLOYEE_PROJECTION = {"_id": 0, "id": 1, "name": 1, "email": 1, "profile_img": 1, "access_level": 1}


async def get_company_or_404(company_id: str) -> dict:
    company = await db.companies.find_one({"id": company_id}, {"_id": 0})
    if not company:
        raise HTTPException(status_code=404, detail="Company not found")
    return company


# ==================== SOCIÉTÉ ====================

@router.get("")
async def get_company(company_id: str, user: dict = Depends(get_current_user)):
    ensure_same_company(user, company_id)
    company = await get_company_or_404(company_id)
    return {"success": True, "data": company}


# ==================== EMPLOYÉS ====================

@router.get("/employees")
async def list_company_employees(
    company_id: str,
    user: dict = Depends(get_current_user)
):
    """Employés actifs de la société"""
    ensure_same_company(user, company_id)
    employees = await db.employees.find(
        {"company_id": company_id, "is_deleted": {"$ne": True}}, EMPLOYEE_PROJECTION
    ).sort("name", 1).to_list(1000)
    return {"success": True, "data": employees}


@router.post("/employees", status_code=201)
async def add_company_employee(
    company_id: str,
    data: CompanyEmployeeCreate,
    user: dict = Depends(require_company_permission("employees.manage"))
):
    """Ajout d'un employé avec le mot de passe par défaut"""
    company = await get_company_or_404(company_id)

    if await email_taken(data.email):
        raise HTTPException(status_code=400, detail="Employee with this email already exists")
    await check_license_limit(company)

    employee = {
        "id": str(uuid.uuid4()),
        "email": data.email,
        "password": hash_password(DEFAULT_EMPLOYEE_PASSWORD),
        "name": data.name,
        "company_id": company_id,
        "access_level": data.access_level,
        "profile_img": data.profile_img,
        "is_active": True,
        "failed_login_attempts": 0,
        "created_at": now_iso(),
        "updated_at": now_iso(),
    }
    await write_account(db.employees.insert_one(employee), "Employee with this email already exists")

    await log_activity(
        user=user,
        action="create",
        entity_type="employee",
        entity_id=employee["id"],
        entity_name=employee["email"],
    )

    return {
        "success": True,
        "message": "Employee added successfully",
        "data": {k: employee[k] for k in ("id", "name", "email", "profile_img", "access_level")},
    }


@router.put("/employees")
async def update_company_employee(
    company_id: str,
    data: EmployeeUpdate,
    employee_id: Optional[str] = None,
    user: dict = Depends(require_company_permission("employees.manage"))
):
    if not employee_id:
        raise HTTPException(status_code=400, detail="employee_id is required")

    target = await db.employees.find_one({"id": employee_id, "company_id": company_id}, {"_id": 0})
    if not target:
        raise HTTPException(status_code=404, detail="Employee not found")

    update_data = {}
    if data.name is not None:
        update_data["name"] = data.name
    if data.email is not None and data.email != target["email"]:
        if await email_taken(data.email):
            raise HTTPException(status_code=400, detail="Employee with this email already exists")
        update_data["email"] = data.email
    if data.access_level is not None:
        update_data["access_level"] = data.access_level
    if data.profile_img is not None:
        update_data["profile_img"] = data.profile_img
    update_data["updated_at"] = now_iso()

    await write_account(db.employees.update_one({"id": employee_id}, {"$set": update_data}))

    await log_activity(
        user=user,
        action="update",
        entity_type="employee",
        entity_id=employee_id,
        entity_name=target["email"],
        details={k: v for k, v in update_data.items() if k != "updated_at"}
    )

    updated = await db.employees.find_one({"id": employee_id}, EMPLOYEE_PROJECTION)
    return {"success": True, "data": updated}


@router.delete("/employees")
async def remove_company_employee(
    company_id: str,
    employee_id: Optional[str] = None,
    user: dict = Depends(require_company_permission("employees.manage"))
):
    """Suppression logique: l'employé est désactivé et son email libéré"""
    if not employee_id:
        raise HTTPException(status_code=400, detail="employee_id is required")

    if not await soft_delete_employee(company_id, employee_id):
        raise HTTPException(status_code=404, detail="Employee not found")

    await log_activity(user=user, action="delete", entity_type="employee", entity_id=employee_id)
    return {"success": True, "message": "Employee deleted successfully"}


# ==================== PRODUITS ====================

@router.get("/products")
async def list_company_products(company_id: str, user: dict = Depends(get_current_user)):
    ensure_same_company(user, company_id)
    products = await db.products.find({"company_id": company_id}, {"_id": 0}).sort("name", 1).to_list(1000)
    return {"success": True, "data": products}


@router.post("/products", status_code=201)
async def add_company_product(
    company_id: str,
    data: ProductCreate,
    user: dict = Depends(require_company_permission("catalog.manage"))
):
    product = build_product(company_id, data)
    await db.products.insert_one(product)
    product.pop("_id", None)
    await log_activity(user=user, action="create", entity_type="product", entity_id=product["id"], entity_name=product["name"])
    return {"success": True, "data": product}


@router.put("/products")
async def update_company_product(
    company_id: str,
    data: ProductUpdate,
    product_id: Optional[str] = None,
    user: dict = Depends(require_company_permission("catalog.manage"))
):
    if not product_id:
        raise HTTPException(status_code=400, detail="product_id is required")

    update_data = product_update_fields(data)
    result = await db.products.update_one(
        {"id": product_id, "company_id": company_id}, {"$set": update_data}
    )
    if result.matched_count == 0:
        raise HTTPException(status_code=404, detail="Product not found")

    product = await db.products.find_one({"id": product_id}, {"_id": 0})
    return {"success": True, "data": product}


@router.delete("/products")
async def delete_company_product(
    company_id: str,
    product_id: Optional[str] = None,
    user: dict = Depends(require_company_permission("catalog.manage"))
):
    """Supprime le produit et ses visites AMS"""
    if not product_id:
        raise HTTPException(status_code=400, detail="product_id is required")

    product = await db.products.find_one({"id": product_id, "company_id": company_id}, {"_id": 0})
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")

    ams = await db.ams.delete_many({"product_id": product_id, "company_id": company_id})
    await db.products.delete_one({"id": product_id})

    logger.info(f"[PRODUCT] Deleted {product_id} with {ams.deleted_count} AMS record(s)")
    await log_activity(
        user=user,
        action="delete",
        entity_type="product",
        entity_id=product_id,
        entity_name=product.get("name"),
        details={"ams_deleted": ams.deleted_count}
    )
    return {"success": True, "message": "Product deleted successfully"}
