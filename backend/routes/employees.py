"""
XY CRM - Routes Employés (liste paginée, mise à jour, désactivation)
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException

from config import db, hash_password, now_iso
from models.auth import EmployeeUpdate
from routes.auth import email_taken, soft_delete_employee, write_account
from services.activity_logger import log_activity
from services.permissions import require_company_permission
from services.query_helpers import contains, get_pagination, paginated

router = APIRouter(prefix="/{company_id}/employees", tags=["Employees"])

EMPLOYEE_PROJECTION = {"_id": 0, "password": 0}


@router.get("")
async def list_employees(
    company_id: str,
    page: int = 1,
    limit: int = 10,
    query: Optional[str] = None,
    user: dict = Depends(require_company_permission("dashboard.view"))
):
    """Employés actifs, les plus récents d'abord"""
    filters = {"company_id": company_id, "is_deleted": {"$ne": True}}
    if query:
        filters["name"] = contains(query)

    skip, limit = get_pagination(page, limit)
    employees = await db.employees.find(filters, EMPLOYEE_PROJECTION) \
        .sort("created_at", -1) \
        .skip(skip) \
        .limit(limit) \
        .to_list(limit)
    total = await db.employees.count_documents(filters)

    return paginated(employees, total, max(page, 1), limit)


@router.put("")
async def update_employee(
    company_id: str,
    data: EmployeeUpdate,
    id: Optional[str] = None,
    user: dict = Depends(require_company_permission("employees.manage"))
):
    """Mise à jour partielle; le mot de passe fourni est hashé"""
    if not id:
        raise HTTPException(status_code=400, detail="Employee ID is required")

    target = await db.employees.find_one({"id": id, "company_id": company_id}, {"_id": 0})
    if not target:
        raise HTTPException(status_code=404, detail="Employee not found")

    update_data = {}
    if data.name is not None:
        update_data["name"] = data.name
    if data.email is not None and data.email != target["email"]:
        if await email_taken(data.email):
            raise HTTPException(status_code=400, detail="Employee with this email already exists")
        update_data["email"] = data.email
    if data.password:
        update_data["password"] = hash_password(data.password)
        update_data["password_changed_at"] = now_iso()
    if data.access_level is not None:
        update_data["access_level"] = data.access_level
    if data.profile_img is not None:
        update_data["profile_img"] = data.profile_img

    if not update_data:
        raise HTTPException(status_code=400, detail="Nothing to update")
    update_data["updated_at"] = now_iso()

    await write_account(db.employees.update_one({"id": id}, {"$set": update_data}))

    await log_activity(
        user=user,
        action="update",
        entity_type="employee",
        entity_id=id,
        entity_name=target["email"],
        details={k: v for k, v in update_data.items() if k not in ("password", "updated_at")}
    )

    updated = await db.employees.find_one({"id": id}, EMPLOYEE_PROJECTION)
    return {"success": True, "message": "Employee updated successfully", "data": updated}


@router.delete("")
async def delete_employee(
    company_id: str,
    id: Optional[str] = None,
    user: dict = Depends(require_company_permission("employees.manage"))
):
    """Suppression logique: compte désactivé, email libéré, sessions fermées"""
    if not id:
        raise HTTPException(status_code=400, detail="Employee ID is required")

    if not await soft_delete_employee(company_id, id):
        raise HTTPException(status_code=404, detail="Employee not found")

    await log_activity(user=user, action="delete", entity_type="employee", entity_id=id)
    return {"success": True, "message": "Employee deleted successfully"}
