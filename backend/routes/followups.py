"""
XY CRM - Routes Follow-ups
Chaque création / modification reporte la date et le statut sur le lead.
"""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException

from config import db, now_iso, parse_datetime, to_iso
from models.lead import FollowUpCreate, FollowUpUpdate
from services.activity_logger import log_activity
from services.permissions import require_permission

router = APIRouter(prefix="/leads/follow-ups", tags=["Follow-ups"])


async def get_company_lead(lead_id: str, user: dict) -> dict:
    """Le lead doit appartenir à la société de l'utilisateur (404 sinon)"""
    lead = await db.leads.find_one({"id": lead_id, "company_id": user["company_id"]}, {"_id": 0})
    if not lead:
        raise HTTPException(status_code=404, detail="Lead not found")
    return lead


def _parse_followup_date(value: str) -> str:
    parsed = parse_datetime(value)
    if parsed is None:
        raise HTTPException(status_code=400, detail=f"Invalid next_followup_date: {value}")
    return to_iso(parsed)


async def _sync_lead(lead_id: str, next_followup_date: str, status: str):
    await db.leads.update_one(
        {"id": lead_id},
        {"$set": {"next_followup_date": next_followup_date, "status": status, "updated_at": now_iso()}}
    )


@router.get("")
async def list_followups(
    lead_id: Optional[str] = None,
    user: dict = Depends(require_permission("leads.view"))
):
    """Follow-ups d'un lead, prochaine date la plus lointaine d'abord"""
    if not lead_id:
        return {"success": False, "message": "Lead ID is required."}

    await get_company_lead(lead_id, user)
    followups = await db.followups.find({"lead_id": lead_id}, {"_id": 0}) \
        .sort("next_followup_date", -1) \
        .to_list(1000)

    if not followups:
        return {"success": False, "message": "No follow-ups found for this lead"}
    return {"success": True, "data": followups}


@router.post("", status_code=201)
async def create_followup(
    data: FollowUpCreate,
    user: dict = Depends(require_permission("followups.manage"))
):
    lead = await get_company_lead(data.lead_id, user)
    next_date = _parse_followup_date(data.next_followup_date)

    followup = {
        "id": str(uuid.uuid4()),
        "company_id": user["company_id"],
        "lead_id": lead["id"],
        "next_followup_date": next_date,
        "last_requirement": data.last_requirement,
        "status": data.status,
        "created_by": user["id"],
        "created_at": now_iso(),
        "updated_at": now_iso(),
    }
    await db.followups.insert_one(followup)
    followup.pop("_id", None)
    await _sync_lead(lead["id"], next_date, data.status)

    await log_activity(
        user=user,
        action="create",
        entity_type="followup",
        entity_id=followup["id"],
        entity_name=lead.get("name"),
        details={"status": data.status}
    )
    return {
        "success": True,
        "message": "Follow-up created successfully and lead updated with next follow-up date.",
        "data": followup,
    }


@router.put("")
async def update_followup(
    data: FollowUpUpdate,
    user: dict = Depends(require_permission("followups.manage"))
):
    existing = await db.followups.find_one({"id": data.id, "company_id": user["company_id"]}, {"_id": 0})
    if not existing:
        raise HTTPException(status_code=404, detail="Follow-up not found")

    # un follow-up reste attaché à son lead
    if data.lead_id != existing["lead_id"]:
        raise HTTPException(status_code=400, detail="lead_id does not match this follow-up")

    lead = await get_company_lead(existing["lead_id"], user)
    next_date = _parse_followup_date(data.next_followup_date)

    await db.followups.update_one(
        {"id": data.id},
        {"$set": {
            "next_followup_date": next_date,
            "last_requirement": data.last_requirement,
            "status": data.status,
            "updated_at": now_iso(),
        }}
    )
    await _sync_lead(lead["id"], next_date, data.status)

    await log_activity(user=user, action="update", entity_type="followup", entity_id=data.id, entity_name=lead.get("name"))

    followup = await db.followups.find_one({"id": data.id}, {"_id": 0})
    return {
        "success": True,
        "message": "Follow-up updated successfully and lead updated with new follow-up date.",
        "data": followup,
    }


@router.delete("")
async def delete_followup(
    followup_id: Optional[str] = None,
    user: dict = Depends(require_permission("followups.manage"))
):
    if not followup_id:
        raise HTTPException(status_code=400, detail="Follow-up ID is required")

    result = await db.followups.delete_one({"id": followup_id, "company_id": user["company_id"]})
    if result.deleted_count == 0:
        raise HTTPException(status_code=404, detail="Follow-up not found")

    await log_activity(user=user, action="delete", entity_type="followup", entity_id=followup_id)
    return {"success": True, "message": "Follow-up deleted successfully."}
